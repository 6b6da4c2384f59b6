from d1dump.client import D1Client
from d1dump.errors import ArtifactDownloadError, JobFailedError

def main() -> None:
    with D1Client.from_config("examples/d1dump.yaml") as client:
        try:
            path = client.export_database("production", on_progress=lambda event: print(f"[export] {event}"))
        except JobFailedError as exc:
            print("Export failed: ", exc)
            return
        except ArtifactDownloadError as exc:
            print("Download failed, retry manually: ", exc.signed_url)
            return
        print(f"Export saved to {path}")

if __name__ == "__main__":
    main()

"""OKRs View API entrypoint."""

import uvicorn


def cli() -> None:
    """CLI entrypoint."""
    uvicorn.run("okrsview.web.app:create_app", factory=True, host="0.0.0.0", port=8000)  # nosec B104


if __name__ == "__main__":
    cli()

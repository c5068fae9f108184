"""Command line entrypoint that serves the API with uvicorn."""

import os


def main() -> None:
    """Run the HTTP and WebSocket server."""
    import uvicorn

    uvicorn.run(
        "tarot_chat.api.asgi:app",
        host=os.getenv("HOST", "0.0.0.0"),  # noqa: S104
        port=int(os.getenv("PORT", "3001")),
        reload=False,
    )


if __name__ == "__main__":  # pragma: no cover
    main()

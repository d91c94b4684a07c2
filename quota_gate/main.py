import uvicorn

from quota_gate.core.app_factory import create_app
from quota_gate.core.config import settings

app = create_app()


def run() -> None:
    """Serve the app on SERVER_HOST:SERVER_PORT."""

    uvicorn.run(app, host=settings.server.host, port=settings.server.port, log_config=None)


if __name__ == "__main__":
    run()

from __future__ import annotations

import uvicorn

from railpay.app import create_app
from railpay.core.config import get_settings

app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "railpay.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_config=None,
    )


if __name__ == "__main__":
    run()

"""Run the API with uvicorn: `python -m levelup` or the `levelup-api` script."""
import uvicorn

from levelup.core.config import settings


def main() -> None:
    uvicorn.run(
        "levelup.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()

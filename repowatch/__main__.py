import uvicorn

from repowatch.config import settings


def main() -> None:
    uvicorn.run("repowatch.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()

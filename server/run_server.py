"""Start the registration admin proxy."""
import os
import sys

from dotenv import load_dotenv

SERVER_DIR = os.path.dirname(os.path.abspath(__file__))


def main() -> None:
    # Load .env from the current directory, then from the server directory
    load_dotenv()
    load_dotenv(os.path.join(SERVER_DIR, ".env"))
    sys.path.insert(0, SERVER_DIR)

    import uvicorn

    from regadmin.config import load_settings
    from regadmin.main import create_app

    settings = load_settings()

    print("\n" + "=" * 60)
    print(f"Admin proxy listening on {settings.port}")
    print(f"  API Docs: http://localhost:{settings.port}/docs")
    print("=" * 60 + "\n")

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()

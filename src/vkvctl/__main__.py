"""vkvctl 패키지 진입점."""

from vkvctl.cli import app

if __name__ == "__main__":
    app()

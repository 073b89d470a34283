import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Launch the API; migrations run in a separate deploy step."""
  logger.info("Starting newsletter service (run alembic upgrade head in deploy pipeline)...")
  port = os.getenv("NEWSLETTER_PORT", "8000")
  # Replace the current process so uvicorn receives SIGTERM directly.
  args = ["uvicorn", "newsletter.main:app", "--host", "0.0.0.0", "--port", port, "--no-server-header"]
  os.execvp("uvicorn", args)


if __name__ == "__main__":
  main()

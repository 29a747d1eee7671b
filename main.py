"""
Tandem - Agentic orchestration core for editor assistants
Main entry point for the server
"""
from dotenv import load_dotenv

# Load environment variables from .env file (TANDEM_SERVER_URL, ...)
load_dotenv()

from tandem.server.main import main  # noqa: E402


if __name__ == "__main__":
    main()

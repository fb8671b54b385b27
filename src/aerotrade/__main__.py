"""Entry point for running bot and API together: python -m aerotrade"""

# Load .env file before importing anything else
from dotenv import load_dotenv
load_dotenv()

from aerotrade.main import main

if __name__ == "__main__":
    main()

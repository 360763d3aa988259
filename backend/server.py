import sys
import os
import uvicorn

# Ensure we are in the correct directory (backend)
current_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.append(current_dir)

import config


def main():
    """
    Server launcher for the StockWise API.
    """
    print(f"[*] Starting Uvicorn server ({config.API_HOST}:{config.API_PORT})...")
    uvicorn.run(
        "main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        reload=False,
    )

if __name__ == "__main__":
    main()

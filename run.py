#!/usr/bin/env python3
"""
Run script for the Customer Service API.
This script launches the FastAPI server with uvicorn.
"""
import os
import sys
import traceback

import uvicorn


def main():
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8081))
    try:
        # Print information about the server
        print("Starting Customer Service API server...")
        print(f"Access the API at http://localhost:{port}")
        print(f"API documentation at http://localhost:{port}/docs")

        # Run the server
        uvicorn.run(
            "customer_service.main:app",
            host=host,
            port=port,
            reload=os.getenv("RELOAD", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "info").lower()
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
State Ledger Entry Point

Starts the FastAPI host for the ledger chaincode.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from state_ledger.api import run_server
from state_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting State Ledger...")
    print(f"State store: {config.store_backend}")
    print(f"Funds check policy: {config.funds_check_policy}")
    print(f"API available at: http://localhost:{config.api_port}")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down State Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)

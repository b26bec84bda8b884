#!/usr/bin/env python3
"""
Launch script for the Fleet Trajectory Analytics Backend.

Usage:
    python run_server.py [data_folder] [--port PORT] [--host HOST]

Examples:
    python run_server.py                    # Use default ./data/vehicles folder
    python run_server.py /path/to/csvs      # Use custom folder
    python run_server.py --sample-data      # Generate a demo fleet first
"""

import argparse
import os
import sys
from datetime import date
from pathlib import Path

# Add fleet_analytics to path
sys.path.insert(0, str(Path(__file__).parent))


def main():
    parser = argparse.ArgumentParser(description="Fleet Trajectory Analytics Server")
    parser.add_argument(
        "data_folder",
        nargs="?",
        default="./data/vehicles",
        help="Path to folder containing per-vehicle CSV files (default: ./data/vehicles)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to run server on (default: 8000)"
    )
    parser.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)"
    )
    parser.add_argument(
        "--timezone", "-t",
        default=None,
        help="IANA timezone for local-day reports (default: FLEET_TIMEZONE or UTC)"
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Generate a demo fleet for today into the data folder"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Run in debug mode"
    )

    args = parser.parse_args()

    data_folder = Path(args.data_folder)

    if args.sample_data:
        from fleet_analytics.utils.sample_data import generate_fleet_data_set
        files = generate_fleet_data_set(data_folder, date.today())
        print(f"Generated {len(files)} sample history files")

    print("Fleet Trajectory Analytics Backend")
    print("=" * 40)
    print(f"Data folder: {data_folder.absolute()}")
    print(f"Server: http://{args.host}:{args.port}")
    print("=" * 40)

    if not data_folder.exists():
        print(f"\nWarning: Data folder does not exist: {data_folder}")

    # Configure FastAPI lifespan and analytics defaults
    if data_folder.exists():
        os.environ["FLEET_DATA_FOLDER"] = str(data_folder)
    if args.timezone:
        os.environ["FLEET_TIMEZONE"] = args.timezone

    print("\nAPI Endpoints:")
    print("  GET  /                         - Health check")
    print("  GET  /health                   - Detailed health")
    print("  POST /analytics/segments       - Trips and stops of posted positions")
    print("  POST /analytics/mileage        - Mileage report of posted positions")
    print("  POST /analytics/incidents      - Driving incidents of posted positions")
    print("  POST /analytics/infractions    - Speed infractions of posted positions")
    print("  POST /analytics/activity       - Drive/stop timeline of posted positions")
    print("  GET  /vehicles                 - List vehicles")
    print("  GET  /vehicles/{id}/mileage    - Mileage report")
    print("  GET  /vehicles/{id}/activity   - Daily activity")
    print("  GET  /fleet/incidents          - Fleet incidents")
    print("  GET  /fleet/infractions        - Fleet speed infractions")
    print("  GET  /fleet/scores             - Fleet driving scores")
    print("\nStarting server...")

    import uvicorn

    uvicorn.run(
        "fleet_analytics.main:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level="debug" if args.debug else "info",
    )


if __name__ == "__main__":
    main()

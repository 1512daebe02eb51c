#!/usr/bin/env python3
"""
BudgetBuddy - Simple Launcher

This script handles:
1. Python version check (requires 3.9+)
2. Dependency verification
3. Database setup (creates the schema if missing)
4. Flask server startup

Usage:
    python start.py
"""

import sys
from pathlib import Path

SRC_DIR = Path(__file__).parent / "src"


# =============================================================================
# STARTUP CHECKS
# =============================================================================

def check_python_version():
    """Verify Python 3.9+ is installed"""
    print("[1/4] Checking Python version...", end=" ")

    if sys.version_info < (3, 9):
        print("[ERROR]")
        print()
        print("=" * 60)
        print("ERROR: Python 3.9 or higher is required")
        print("=" * 60)
        print(f"You are using Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
        sys.exit(1)

    print(f"[OK] Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")


def check_dependencies():
    """Verify required packages are installed"""
    print("[2/4] Checking dependencies...", end=" ")

    missing = []
    required = {
        'flask': 'Flask',
        'flask_cors': 'Flask-CORS',
        'flask_login': 'Flask-Login',
        'bcrypt': 'bcrypt',
        'dotenv': 'python-dotenv',
        'jwt': 'PyJWT',
        'httpx': 'httpx',
    }

    for module, package in required.items():
        try:
            __import__(module)
        except ImportError:
            missing.append(package)

    if missing:
        print("[ERROR]")
        print()
        print("=" * 60)
        print("ERROR: Missing required packages")
        print("=" * 60)
        print()
        print("Missing packages:")
        for pkg in missing:
            print(f"  - {pkg}")
        print()
        print("To install all dependencies, run:")
        print("  pip install -e .")
        print()
        sys.exit(1)

    print("[OK]")


def setup_database():
    """Create the database schema on first run"""
    from setup_sqlite import create_database, get_db_path

    db_path = get_db_path()
    if db_path.exists():
        print("[3/4] Database found...", end=" ")
    else:
        print("[3/4] Database not found, creating new database...", end=" ")

    if not create_database(db_path):
        print("[ERROR]")
        print()
        print("Failed to create database. Check error messages above.")
        sys.exit(1)
    print("[OK]")


def start_flask_server():
    """Launch Flask API server"""
    import config
    from api import create_app

    print("[4/4] Starting BudgetBuddy server...")
    print()
    print("=" * 60)
    print("BudgetBuddy is running!")
    print("=" * 60)
    print()
    print(f"  Server: http://{config.HOST}:{config.PORT}")
    print(f"  Health: http://{config.HOST}:{config.PORT}/health")
    print("  Press Ctrl+C to stop the server")
    print()

    create_app().run(host=config.HOST, port=config.PORT, debug=False, use_reloader=False)


def main():
    """Main entry point"""
    print()
    print("=" * 60)
    print("BudgetBuddy - Personal Finance Backend")
    print("=" * 60)
    print()

    try:
        check_python_version()
        check_dependencies()

        sys.path.insert(0, str(SRC_DIR))
        import config
        config.configure_logging()

        setup_database()
        start_flask_server()
    except KeyboardInterrupt:
        print()
        print("=" * 60)
        print("Server stopped.")
        print("=" * 60)
        print()


if __name__ == "__main__":
    main()

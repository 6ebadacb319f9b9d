#!/usr/bin/env python3
"""
Development start script for the API fallback service.
Forces test-environment synthesis unless FORCE_REAL_API is set.
"""

import os
import sys

# Add current directory to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

if __name__ == "__main__":
    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("LOG_LEVEL", "DEBUG")

    try:
        import uvicorn
        from legal_analyzer.models.config import get_settings
    except ImportError as e:
        print(f"❌ Import Error: {e}")
        print("💡 Install the project first:")
        print("   pip install -e .")
        sys.exit(1)

    settings = get_settings()
    print("🚀 Starting Legal Document Analyzer API fallback...")
    print(f"📄 API Documentation: http://localhost:{settings.API_PORT}/docs")
    print(f"❤️  Health Check: http://localhost:{settings.API_PORT}/health")
    print(f"🔌 Upstream: {settings.FALLBACK_API_URL} (force real network: {settings.FORCE_REAL_API})")
    print()

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.API_PORT,
        reload=True,
        log_level="debug"
    )

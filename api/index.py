"""
Vercel serverless entrypoint.

Re-exports the FastAPI app so the serverless runtime serves the same
middleware and routes as a local run. The server is never started here.
"""

from pathlib import Path
import sys

project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from appointment_api.main import app  # noqa: E402,F401

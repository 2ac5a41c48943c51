"""Convenience launcher: python run_server.py
Runs the API from the repository root so ``backend.bookings_assistant`` resolves.
"""
from backend.bookings_assistant.main import app  # type: ignore

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)

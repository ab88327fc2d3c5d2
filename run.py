#!/usr/bin/env python3
"""Run script for FamilyTasks."""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "familytasks.api.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "info"),
        reload=True
    )

#!/usr/bin/env python3
"""
Startup script for the Task Workflow Backend
This script starts the FastAPI server with proper configuration
"""

import uvicorn

from app.config.settings import WorkflowConfig

def main():
    # Server configuration
    host = WorkflowConfig.SERVER['host']
    port = WorkflowConfig.SERVER['port']
    reload = WorkflowConfig.SERVER['reload']

    print("Starting Task Workflow Backend Server...")
    print(f"Host: {host}")
    print(f"Port: {port}")
    print(f"Reload: {reload}")
    print("=" * 50)

    # Start the server
    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=WorkflowConfig.LOGGING['level'].lower()
    )

if __name__ == "__main__":
    main()

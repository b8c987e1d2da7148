#!/usr/bin/env python
import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from purchase_flow.main import app  # noqa: E402

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8001")),
    )

#!/usr/bin/env python3
"""
SplitForge Web Server: run the splitter over posted source text.

Start with:
    python cli/server.py
    # Then POST to http://localhost:8000/split

Routes:
    GET  /health            → Health check
    POST /split             → Generated modules + run report (nothing is written to disk)
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# Ensure src/ is importable
_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

app = FastAPI(title="SplitForge", version="0.1.0")

# ── Request Models ─────────────────────────────────────────────────────


class SplitRequest(BaseModel):
    source_text: str
    config_yaml: str | None = None  # overrides the built-in config sections it defines
    skip: list[str] = []
    extension: str = ".ts"
    source_name: str = "<request>"


# ── Routes ─────────────────────────────────────────────────────────────


@app.get("/health")
async def health():
    return {"status": "ok", "service": "splitforge"}


@app.post("/split")
async def split(req: SplitRequest):
    """Split posted source text and return every generated module."""

    def run_split_text():
        from source_splitter import build_report, generate_modules, split_source
        from split_config import config_from_text, load_split_config
        from split_report import registrations_to_dict, report_to_dict

        config = load_split_config()
        if req.config_yaml:
            config = config_from_text(req.config_yaml, base=config)

        result = split_source(req.source_text, config.rules, config.keywords)
        modules, failures = generate_modules(result, config, req.skip, req.extension)
        run_report = build_report(
            result,
            config.rules,
            source=req.source_name,
            generation_failures=failures,
            output_files={m.destination: m.filename for m in modules},
        )
        return {
            "modules": {m.filename: m.text for m in modules},
            "registrations": registrations_to_dict(result.buckets),
            "report": report_to_dict(run_report),
            "exit_code": 3 if run_report.fatal_keywords else 0,
        }

    try:
        payload = await asyncio.get_event_loop().run_in_executor(None, run_split_text)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse(payload)


# ── Startup ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    print(f"\n  SplitForge server starting on http://localhost:{port}")
    print(f"  API docs at http://localhost:{port}/docs\n")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")

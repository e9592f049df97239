# mpgfit/serve.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import httpx
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from pydantic import BaseModel

from .config import DOWNLOADS_DIR, FIGURES_DIR, SAVE_MODEL_NAME
from .errors import (
    DegenerateDataError,
    FormatError,
    InvalidModelFileError,
    MissingFilesError,
    MpgFitError,
    NetworkError,
    NoModelError,
    TrainingCancelledError,
    TrainingDivergedError,
    TrainingInProgressError,
)
from .handle import ModelHandle
from .model_io import load_and_predict, save_model
from .train import TrainConfig, run
from .viz import TARGETS, FigureSink, VisualizationSink

logger = logging.getLogger(__name__)


# ---------- Error mapping ----------

STATUS_BY_ERROR = {
    MissingFilesError: 400,
    InvalidModelFileError: 400,
    DegenerateDataError: 422,
    NoModelError: 409,
    TrainingInProgressError: 409,
    TrainingCancelledError: 409,
    NetworkError: 502,
    FormatError: 502,
    TrainingDivergedError: 500,
}

MISSING_FILES_TITLE = "No file choosen"
MISSING_FILES_TEXT = "Please upload your manifest and weights"


# ---------- Request / Response schemas ----------

class RunResponse(BaseModel):
    n_samples: int
    epochs: int
    final_loss: Optional[float]
    final_mse: Optional[float]
    bounds: Dict[str, float]
    metrics: Dict[str, float]
    figures: Dict[str, str]


class LoadResponse(BaseModel):
    title: str
    text: str
    predictions: List[float]


class SaveResponse(BaseModel):
    files: List[str]


class CancelResponse(BaseModel):
    cancelled: bool


# ---------- HTML page ----------

INDEX_HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>MPG from Horsepower</title>
    <style>
        body { font-family: system-ui, sans-serif; max-width: 900px; margin: 40px auto; padding: 20px; }
        h1 { color: #333; }
        .controls { display: flex; flex-wrap: wrap; gap: 1em; align-items: center; margin-bottom: 1.5em; }
        .figures { display: grid; grid-template-columns: 1fr 1fr; gap: 1em; }
        .figures img { max-width: 100%; border: 1px solid #ddd; min-height: 40px; }
        button { padding: 6px 14px; }
    </style>
</head>
<body>
    <h1>MPG from Horsepower</h1>
    <div class="controls">
        <label>Manifest <input type="file" id="manifestFile" accept=".json"></label>
        <label>Weights <input type="file" id="weightsFile" accept=".bin"></label>
    </div>
    <div class="controls">
        <button onclick="runTraining()">Run</button>
        <button onclick="runUploaded()">Run with uploaded model</button>
        <button onclick="saveModel()">Save</button>
    </div>
    <p id="status"></p>
    <div class="figures">
        <div><h4>Input data</h4><img id="data"></div>
        <div><h4>Model summary</h4><img id="summary"></div>
        <div><h4>Training progress</h4><img id="progress"></div>
        <div><h4>Evaluation</h4><img id="evaluation"></div>
    </div>
    <script>
        const setStatus = (msg) => { document.getElementById("status").textContent = msg; };

        async function showError(resp) {
            const body = await resp.json();
            alert((body.title ? body.title + ": " : "") + (body.text || body.detail));
        }

        async function runTraining() {
            setStatus("Training...");
            const resp = await fetch("/run", { method: "POST" });
            if (!resp.ok) { setStatus(""); return showError(resp); }
            const body = await resp.json();
            const stamp = Date.now();
            for (const [target, url] of Object.entries(body.figures)) {
                document.getElementById(target).src = url + "?t=" + stamp;
            }
            setStatus("Done Training: final loss " + body.final_loss.toFixed(5));
        }

        async function runUploaded() {
            const form = new FormData();
            const manifest = document.getElementById("manifestFile").files[0];
            const weights = document.getElementById("weightsFile").files[0];
            if (manifest) form.append("manifest", manifest);
            if (weights) form.append("weights", weights);
            const resp = await fetch("/load", { method: "POST", body: form });
            if (!resp.ok) return showError(resp);
            const body = await resp.json();
            alert(body.title + "\\n" + body.text);
        }

        async function saveModel() {
            const resp = await fetch("/save", { method: "POST" });
            if (!resp.ok) return showError(resp);
            const body = await resp.json();
            for (const url of body.files) {
                const a = document.createElement("a");
                a.href = url;
                a.download = url.split("/").pop();
                a.click();
            }
        }
    </script>
</body>
</html>
"""


# ---------- FastAPI app ----------

def _inside(directory: Path, filename: str) -> Optional[Path]:
    """Resolve filename under directory, or None if it escapes it or is missing."""
    root = directory.resolve()
    path = (root / filename).resolve()
    if path.parent != root or not path.is_file():
        return None
    return path


def create_app(
    handle: Optional[ModelHandle] = None,
    sink: Optional[VisualizationSink] = None,
    downloads_dir: Path = DOWNLOADS_DIR,
    figures_dir: Path = FIGURES_DIR,
    config: Optional[TrainConfig] = None,
    client: Optional[httpx.Client] = None,
) -> FastAPI:
    handle = handle or ModelHandle()
    sink = sink or FigureSink(figures_dir)
    downloads_dir = Path(downloads_dir)
    figures_dir = Path(figures_dir)

    app = FastAPI(title="mpgfit demo")
    app.state.handle = handle

    @app.exception_handler(MpgFitError)
    def handle_mpgfit_error(request: Request, exc: MpgFitError):
        status = STATUS_BY_ERROR.get(type(exc), 500)
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.get("/", response_class=HTMLResponse)
    def index():
        return INDEX_HTML

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "model_loaded": handle.get() is not None,
            "training": handle.training,
        }

    @app.post("/run", response_model=RunResponse)
    def run_training():
        """Load the data, train a fresh model, evaluate it and draw every figure."""
        logger.info("Run requested")
        result = run(config=config, sink=sink, handle=handle, client=client)
        summary = result.as_dict()
        return RunResponse(
            n_samples=summary["n_samples"],
            epochs=summary["epochs"],
            final_loss=summary["final_loss"],
            final_mse=summary["final_mse"],
            bounds=summary["bounds"],
            metrics=summary["metrics"],
            figures={target: f"/figures/{target}.png" for target in TARGETS},
        )

    @app.post("/load", response_model=LoadResponse)
    def run_uploaded(
        manifest: Optional[UploadFile] = File(None),
        weights: Optional[UploadFile] = File(None),
    ):
        """
        Load an uploaded manifest+weights pair and predict on a 10-point grid.

        The uploaded model is independent of the trained one; it is never
        published to the handle.
        """
        if manifest is None or weights is None:
            logger.info("Load rejected: manifest or weights missing")
            return JSONResponse(
                status_code=STATUS_BY_ERROR[MissingFilesError],
                content={
                    "title": MISSING_FILES_TITLE,
                    "text": MISSING_FILES_TEXT,
                    "detail": MISSING_FILES_TEXT,
                },
            )

        preds = load_and_predict(
            manifest.file.read(),
            weights.file.read(),
            weights_name=weights.filename or None,
        )
        joined = "".join(f",{p}" for p in preds)
        return LoadResponse(
            title="Model uploaded!",
            text=f"Model successfully loaded! Predicted: {joined}",
            predictions=preds,
        )

    @app.post("/save", response_model=SaveResponse)
    def save():
        saved = save_model(handle, directory=downloads_dir, base_name=SAVE_MODEL_NAME)
        return SaveResponse(files=[f"/downloads/{p.name}" for p in saved.paths])

    @app.post("/cancel", response_model=CancelResponse)
    def cancel():
        return CancelResponse(cancelled=handle.cancel())

    @app.get("/downloads/{filename}")
    def download(filename: str):
        path = _inside(downloads_dir, filename)
        if path is None:
            raise HTTPException(status_code=404, detail=f"No saved file named {filename}")
        return FileResponse(path, filename=path.name)

    @app.get("/figures/{target}.png")
    def figure(target: str):
        if target not in TARGETS:
            raise HTTPException(status_code=404, detail=f"Unknown figure: {target}")
        path = _inside(figures_dir, f"{target}.png")
        if path is None:
            raise HTTPException(status_code=404, detail=f"Figure {target} not drawn yet")
        return FileResponse(path, media_type="image/png")

    return app


app = create_app()

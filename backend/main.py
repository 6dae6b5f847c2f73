import logging
import logging.config
import os
import threading
import uuid

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from comparator import NOT_ENOUGH_DATA_FEEDBACK, compare_streams
from errors import InsufficientData
from models import CompareRequest, ComparisonResult, JobStatus, PoseComparison, TimingIssues
from settings import EngineConfig, settings

if os.path.exists(settings.logging_config_file):
    logging.config.fileConfig(settings.logging_config_file, disable_existing_loggers=False)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.project_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# In-memory job store
jobs: dict[str, dict] = {}
engine_config = EngineConfig()


@app.get(f"{settings.api_prefix}/health")
def health():
    return {"status": "ok"}


@app.post(f"{settings.api_prefix}/compare")
def compare(request: CompareRequest):
    job_id = str(uuid.uuid4())
    jobs[job_id] = {"status": "pending", "message": "Queued", "result": None}

    # Process in background thread
    thread = threading.Thread(target=_process_job, args=(job_id, request))
    thread.start()

    return {"job_id": job_id}


def _process_job(job_id: str, request: CompareRequest):
    try:
        jobs[job_id]["status"] = "processing"
        jobs[job_id]["message"] = "Comparing performances..."

        result = compare_streams(request.user_frames, request.reference_frames, engine_config)

        jobs[job_id]["status"] = "complete"
        jobs[job_id]["message"] = "Done"
        jobs[job_id]["result"] = result
    except InsufficientData as e:
        logger.info("job %s: %s", job_id, e)
        jobs[job_id]["status"] = "insufficient_data"
        jobs[job_id]["message"] = NOT_ENOUGH_DATA_FEEDBACK
        jobs[job_id]["result"] = ComparisonResult(
            final_score=0,
            feedback=NOT_ENOUGH_DATA_FEEDBACK,
            dtw_results={},
            pose_comparison=PoseComparison(),
            timing=TimingIssues(),
        )
    except Exception as e:
        logger.exception("job %s failed", job_id)
        jobs[job_id]["status"] = "error"
        jobs[job_id]["message"] = str(e)


@app.get(f"{settings.api_prefix}/status/{{job_id}}")
def get_status(job_id: str):
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job not found")
    job = jobs[job_id]
    return JobStatus(job_id=job_id, status=job["status"], message=job["message"])


@app.get(f"{settings.api_prefix}/results/{{job_id}}")
def get_results(job_id: str):
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail="Job not found")
    job = jobs[job_id]
    if job["status"] not in ("complete", "insufficient_data"):
        raise HTTPException(status_code=400, detail=f"Job not complete: {job['status']}")
    return job["result"]

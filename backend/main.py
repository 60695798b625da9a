import logging
import os
from contextlib import asynccontextmanager
from typing import List

from dotenv import find_dotenv, load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.database import JobApplicationStore, close_db, get_db
from backend.errors import JobApplicationError
from backend.generator import ContentGenerator
from backend.schemas import (
    ApiResponse,
    GeneratedContent,
    GenerateRequest,
    JobApplicationCreate,
    JobApplicationOut,
    StatusOut,
)
from backend.service import JobApplicationService

load_dotenv(find_dotenv(usecwd=True))

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _generation_timeout():
    raw = os.getenv("GENERATION_TIMEOUT_SECONDS")
    return float(raw) if raw else None


@asynccontextmanager
async def lifespan(app: FastAPI):
    # a service placed on app.state beforehand is used as is
    service = getattr(app.state, "service", None)
    owns_service = service is None
    if owns_service:
        generator = ContentGenerator.from_env()
        store = JobApplicationStore(get_db())
        await store.ensure_indexes()
        service = JobApplicationService(store, generator, generation_timeout=_generation_timeout())
        app.state.service = service
    logger.info("Job application backend started")
    yield
    await service.shutdown()
    if owns_service:
        close_db()
        del app.state.service
    logger.info("Shutting down")


app = FastAPI(title="Job Application Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service(request: Request) -> JobApplicationService:
    return request.app.state.service


@app.exception_handler(JobApplicationError)
async def job_application_error_handler(request: Request, exc: JobApplicationError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.error})")
    body = ApiResponse(success=False, message=exc.message, error=exc.error)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    body = ApiResponse(success=False, message="Invalid request", error=str(exc.errors()))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(exclude_none=True))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    body = ApiResponse(success=False, message="Internal server error", error=str(exc))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump(exclude_none=True))


@app.get("/")
async def read_root():
    return {"message": "Job Application Backend Running"}


@app.get("/test")
async def test(service: JobApplicationService = Depends(get_service)):
    # Ensure DB accessible by listing collections
    cols = await service.store.ping()
    return {"ok": True, "collections": cols}


router = APIRouter(prefix="/job-applications", tags=["job-applications"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[JobApplicationOut],
    response_model_exclude_none=True,
)
async def create_job_application(
    req: JobApplicationCreate, service: JobApplicationService = Depends(get_service)
):
    record = await service.create(req.resume_content, req.job_description, req.original_file_name)
    return ApiResponse(data=record, message="Job application created successfully")


@router.post(
    "/generate",
    response_model=ApiResponse[GeneratedContent],
    response_model_exclude_none=True,
)
async def generate_content(req: GenerateRequest, service: JobApplicationService = Depends(get_service)):
    content = await service.generate(req.resume_content, req.job_description)
    return ApiResponse(data=content, message="Content generated successfully")


@router.get(
    "/{record_id}/status",
    response_model=ApiResponse[StatusOut],
    response_model_exclude_none=True,
)
async def get_job_application_status(record_id: str, service: JobApplicationService = Depends(get_service)):
    return ApiResponse(data=await service.get_status(record_id))


@router.get(
    "/{record_id}",
    response_model=ApiResponse[JobApplicationOut],
    response_model_exclude_none=True,
)
async def get_job_application(record_id: str, service: JobApplicationService = Depends(get_service)):
    return ApiResponse(data=await service.get(record_id))


@router.get(
    "",
    response_model=ApiResponse[List[JobApplicationOut]],
    response_model_exclude_none=True,
)
async def list_job_applications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    service: JobApplicationService = Depends(get_service),
):
    result = await service.list(page=page, limit=limit)
    return ApiResponse(data=result.items, pagination=result.pagination)


@router.delete("/{record_id}", response_model=ApiResponse, response_model_exclude_none=True)
async def delete_job_application(record_id: str, service: JobApplicationService = Depends(get_service)):
    await service.delete(record_id)
    return ApiResponse(message="Job application deleted successfully")


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

"""API route definitions."""

import asyncio
import logging
import time

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from ..models import (
    ErrorResponse,
    FieldResult,
    HealthResponse,
    LogEntryRequest,
    LogListResponse,
    LogWriteResponse,
    VerificationResponse,
)
from ..exceptions import InputError, LabelVerificationError
from ..services import VerificationLogStore, VerificationPipeline, decode_image, render_report
from .. import __version__

logger = logging.getLogger(__name__)
router = APIRouter()
ping_router = APIRouter()


def get_pipeline(request: Request) -> VerificationPipeline:
    return request.app.state.pipeline


def get_log_store(request: Request) -> VerificationLogStore:
    return request.app.state.log_store


@ping_router.get("/ping", include_in_schema=False)
async def ping():
    return {"ok": True}


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(pipeline: VerificationPipeline = Depends(get_pipeline)):
    """Check API health and OCR readiness."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        ocr_ready=pipeline.ocr_service.is_ready
    )


@router.post(
    "/verify",
    response_model=VerificationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
    },
    tags=["Verification"]
)
async def verify_label(
    image: UploadFile = File(..., description="Label image file"),
    brand_name: str = Form("", alias="brandName", description="Expected brand name"),
    product_class: str = Form("", alias="productClass", description="Expected class/type"),
    alcohol_content: str = Form("", alias="alcoholContent", description="Expected alcohol content, e.g. 40% or 80 proof"),
    net_contents: str = Form("", alias="netContents", description="Expected net contents, e.g. 750 mL"),
    manufacturer_name: str = Form("", alias="manufacturerName", description="Expected manufacturer name"),
    manufacturer_address: str = Form("", alias="manufacturerAddress", description="Expected manufacturer address"),
    pipeline: VerificationPipeline = Depends(get_pipeline),
):
    """
    Verify a label image against the expected field values.
    
    Fields left empty are not verified. Each verified field reports whether
    it was found on the label and with what confidence.
    """
    start_time = time.time()
    
    try:
        image_bytes = await image.read()
    except Exception as e:
        logger.error(f"Failed to read uploaded image: {e}")
        raise HTTPException(status_code=400, detail="Failed to read uploaded image")
    
    image_name = image.filename or "unknown"
    is_valid, error_msg = pipeline.preprocessor.validate_image(image_bytes, image_name)
    if not is_valid:
        return VerificationResponse(success=False, image_name=image_name, error=error_msg)
    
    fields = {
        "brandName": brand_name,
        "productClass": product_class,
        "alcoholContent": alcohol_content,
        "netContents": net_contents,
        "manufacturerName": manufacturer_name,
        "manufacturerAddress": manufacturer_address,
    }
    
    try:
        result = await pipeline.run(image_bytes, image_name, fields)
    except InputError as e:
        return VerificationResponse(success=False, image_name=image_name, error=str(e))
    except LabelVerificationError as e:
        logger.exception(f"Verification failed for {image_name}: {e}")
        return VerificationResponse(
            success=False,
            image_name=image_name,
            error=f"Error processing image: {str(e)}"
        )
    
    return VerificationResponse(
        success=True,
        image_name=image_name,
        ocr_text=result.ocr_text,
        ocr_confidence=result.ocr_confidence,
        configuration=result.configuration,
        results=[
            FieldResult(
                field=r.field,
                input=r.expected,
                found=r.matched,
                confidence=r.confidence,
                best_match=r.excerpt,
            )
            for r in result.results
        ],
        report=render_report(result.results),
        processing_time_ms=int((time.time() - start_time) * 1000),
    )


@router.post(
    "/preprocess",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}, 400: {"model": ErrorResponse}},
    tags=["Preprocessing"]
)
async def preprocess_preview(
    image: UploadFile = File(..., description="Label image file"),
    pipeline: VerificationPipeline = Depends(get_pipeline),
):
    """Return every preprocessing variant tiled into one PNG grid, for inspection."""
    image_bytes = await image.read()
    preprocessor = pipeline.preprocessor
    
    def render() -> bytes:
        variants = preprocessor.produce_variants(decode_image(image_bytes))
        return preprocessor.encode_png(preprocessor.composite(variants))
    
    try:
        png = await asyncio.to_thread(render)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LabelVerificationError as e:
        logger.exception(f"Preprocessing preview failed: {e}")
        raise HTTPException(status_code=500, detail=f"Error processing image: {str(e)}")
    
    return Response(content=png, media_type="image/png")


@router.post("/log-verification", response_model=LogWriteResponse, tags=["Logs"])
async def log_verification(
    entry: LogEntryRequest,
    log_store: VerificationLogStore = Depends(get_log_store),
):
    """Append a verification record to the log."""
    record = entry.model_dump()
    if record.get("timestamp") is None:
        record.pop("timestamp", None)
    try:
        await asyncio.to_thread(log_store.append, record)
    except (OSError, ValueError) as e:
        logger.error(f"Error logging verification: {e}")
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
    return LogWriteResponse(success=True, message="Verification logged")


@router.get("/verification-logs", response_model=LogListResponse, tags=["Logs"])
async def get_verification_logs(log_store: VerificationLogStore = Depends(get_log_store)):
    """Return every stored verification record, oldest first."""
    try:
        logs = await asyncio.to_thread(log_store.read_all)
    except (OSError, ValueError) as e:
        logger.error(f"Error reading logs: {e}")
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
    return LogListResponse(success=True, logs=logs)


@router.delete("/verification-logs", response_model=LogWriteResponse, tags=["Logs"])
async def clear_verification_logs(log_store: VerificationLogStore = Depends(get_log_store)):
    """Delete the verification log."""
    try:
        await asyncio.to_thread(log_store.clear)
    except OSError as e:
        logger.error(f"Error clearing logs: {e}")
        return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
    return LogWriteResponse(success=True, message="Logs cleared")

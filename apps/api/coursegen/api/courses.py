from typing import Any

from fastapi import APIRouter

from coursegen.services.course.generation_service import (
    GenerateCourseRequest,
    generate_course as service_generate_course,
    load_course as service_load_course,
)


router = APIRouter(prefix="/api", tags=["courses"])


@router.post("/generate-course")
def generate_course(payload: GenerateCourseRequest) -> dict[str, Any]:
    return service_generate_course(payload)


@router.get("/courses/{exam_id}")
def get_course(exam_id: str) -> dict[str, Any]:
    return service_load_course(exam_id)

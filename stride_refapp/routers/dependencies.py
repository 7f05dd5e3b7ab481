from fastapi import Request

from stride_refapp.services.stride import StrideClient


def get_stride(request: Request) -> StrideClient:
    """The process-wide client created in the app lifespan."""
    return request.app.state.stride

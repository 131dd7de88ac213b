from .client import ApiResult, SwaggerDiffClient

__all__ = ["ApiResult", "SwaggerDiffClient"]

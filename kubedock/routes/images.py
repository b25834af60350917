"""Image endpoints of the API."""

from __future__ import annotations

from datetime import datetime, timezone

from kubedock.model.database import NotFoundError
from kubedock.model.records import Image
from kubedock.routes.base import ApiError, ApiRequest, ApiResponse, BaseRouter


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}Z"
    )


def _unix(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


class ImageRoutes(BaseRouter):
    """Handlers for the /images endpoints."""

    def _inspect(self, image: Image) -> None:
        if not self.config.inspector:
            return
        try:
            image.exposed_ports = dict(self.backend.get_image_exposed_ports(image.name))
        except Exception as err:
            raise ApiError(500, str(err)) from err

    def image_list(self, request: ApiRequest) -> ApiResponse:
        """List known images; GET /images/json."""
        result = []
        for image in self.db.get_images():
            name = image.name if ":" in image.name else image.name + ":latest"
            result.append(
                {
                    "ID": image.id,
                    "Size": 0,
                    "Created": _unix(image.created),
                    "RepoTags": [name],
                }
            )
        return ApiResponse(200, result)

    def image_json(self, request: ApiRequest) -> ApiResponse:
        """Inspect an image, registering it if unknown; GET /images/{image}/json."""
        id = (request.params.get("image", "") + request.params.get("json", "")).removesuffix(
            "/json"
        )
        try:
            image = self.db.get_image_by_name_or_id(id)
        except NotFoundError:
            image = Image(name=id)
            self._inspect(image)
            self.db.save_image(image)
        return ApiResponse(
            200,
            {
                "Id": image.name,
                "Created": _format_time(image.created),
                "Size": 0,
                "ContainerConfig": {"Image": image.name},
            },
        )

    def image_create(self, request: ApiRequest) -> ApiResponse:
        """Register an image as pulled; POST /images/create."""
        name = request.query.get("fromImage", "")
        tag = request.query.get("tag", "")
        if tag:
            name = f"{name}:{tag}"
        image = Image(name=name)
        self._inspect(image)
        self.db.save_image(image)
        return ApiResponse(200, {"status": "Download complete"})
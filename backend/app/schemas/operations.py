"""Tagged union of lot operations for POST /api/lots/operations.

    {"operation": "split",    ...SplitRequest}
    {"operation": "blend",    ...BlendRequest}
    {"operation": "package",  ...PackagingRequest}
    {"operation": "complete", "lot_id": "...", "notes": "..."}
"""

from typing import Annotated, Literal, Union

from pydantic import Field, RootModel

from app.schemas.lot import BlendRequest, CompleteLotRequest, SplitRequest
from app.schemas.packaging import PackagingRequest


class SplitOperation(SplitRequest):
    operation: Literal["split"]


class BlendOperation(BlendRequest):
    operation: Literal["blend"]


class PackageOperation(PackagingRequest):
    operation: Literal["package"]


class CompleteOperation(CompleteLotRequest):
    operation: Literal["complete"]
    lot_id: str


LotOperation = Annotated[
    Union[SplitOperation, BlendOperation, PackageOperation, CompleteOperation],
    Field(discriminator="operation"),
]


class LotOperationRequest(RootModel[LotOperation]):
    pass

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class FileAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OperationStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ERROR = "error"


class NarrationNode(BaseModel):
    type: Literal["narration"] = "narration"
    id: str
    text: str = ""


class FileOpNode(BaseModel):
    type: Literal["file"] = "file"
    id: str
    path: str
    action: FileAction
    content: str = ""
    closed: bool = False


class CommandOpNode(BaseModel):
    type: Literal["terminal"] = "terminal"
    id: str
    command: str
    background: bool = False


StreamNode = Annotated[NarrationNode | FileOpNode | CommandOpNode, Field(discriminator="type")]
Instruction = FileOpNode | CommandOpNode


class FileOperation(BaseModel):
    """A file mutation as mirrored to durable storage."""

    type: FileAction
    path: str
    content: str | None = None


class ProjectFile(BaseModel):
    path: str
    content: str = ""


class TreeNode(BaseModel):
    name: str
    path: str
    type: Literal["file", "directory"]
    children: list["TreeNode"] | None = None
    content: str | None = None


TreeNode.model_rebuild()  # necessary for recursive types

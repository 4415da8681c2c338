from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName", min_length=1)
    # PDF en base64; si falta, el documento se sube después
    data: Optional[str] = None
    id: Optional[str] = Field(default=None, min_length=1, max_length=128)


class SessionCreatedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    retrieval_url: str = Field(serialization_alias="retrievalUrl")
    upload_url: str = Field(serialization_alias="uploadUrl")
    status_url: str = Field(serialization_alias="statusUrl")
    download_url: str = Field(serialization_alias="downloadUrl")


class PrestorageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName", min_length=1)
    data: str
    id: Optional[str] = Field(default=None, min_length=1, max_length=128)


class PrestorageResponse(BaseModel):
    storage_id: str = Field(serialization_alias="storageId")
    retrieval_url: str = Field(serialization_alias="retrievalUrl")

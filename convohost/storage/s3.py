"""
S3 对象存储后端。

基于 boto3 的 S3 客户端实现 FileProvider。所有对象键都拼接在可选的 prefix 之下：
    prefix="chatbot", path="sessions/a/b.json" → key="chatbot/sessions/a/b.json"

错误映射：
- NoSuchKey / 404 → FileNotFoundError（与本地后端保持一致）
- 其他 ClientError 原样向上抛出，由调用方包装为 StorageError
"""

from typing import Any

from botocore.exceptions import ClientError
from loguru import logger

from convohost.storage.base import FileProvider

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _is_not_found(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in _NOT_FOUND_CODES


class S3FileProvider(FileProvider):
    """
    S3 存储后端。

    参数:
        bucket: 存储桶名称
        prefix: 所有对象键的公共前缀（可为空）
        client: boto3 S3 客户端；为 None 时使用默认凭证链创建
    """

    def __init__(self, bucket: str, prefix: str = "", client: Any = None, region: str | None = None):
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        if client is None:
            import boto3
            client = boto3.client("s3", region_name=region) if region else boto3.client("s3")
        self.client = client

    def _key(self, path: str) -> str:
        if not self.prefix:
            return path
        return f"{self.prefix}/{path}"

    def read(self, path: str) -> bytes:
        key = self._key(path)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise FileNotFoundError(key) from e
            raise
        return response["Body"].read()

    def write(self, path: str, data: bytes) -> None:
        self.client.put_object(
            Bucket=self.bucket,
            Key=self._key(path),
            Body=data,
            ContentType="application/json",
        )

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(path))
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise
        return True

    def delete(self, path: str) -> None:
        # S3 删除不存在的对象不会报错
        self.client.delete_object(Bucket=self.bucket, Key=self._key(path))

    def list(self, prefix: str) -> list[str]:
        full_prefix = self._key(prefix)
        strip = len(self._key(""))
        results = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=full_prefix):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                if len(key) > strip:
                    results.append(key[strip:])
        logger.debug(f"Listed {len(results)} objects under s3://{self.bucket}/{full_prefix}")
        return results

"""AWS Signature Version 4 signing for Selling Partner API requests."""

from __future__ import annotations

from collections.abc import Mapping


class SigV4RequestSigner:
    """Sign requests with IAM credentials kept separate from the LWA token."""

    def __init__(
        self,
        *,
        access_key_id: str,
        secret_access_key: str,
        region: str,
        service: str = "execute-api",
    ) -> None:
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._region = region
        self._service = service

    def sign(self, method: str, url: str, headers: Mapping[str, str]) -> dict[str, str]:
        """Return `headers` plus the SigV4 `Authorization` and `X-Amz-Date` headers."""

        try:
            from botocore.auth import SigV4Auth  # type: ignore[import-not-found]
            from botocore.awsrequest import AWSRequest  # type: ignore[import-not-found]
            from botocore.credentials import Credentials  # type: ignore[import-not-found]
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "boto3 is required for SP-API request signing. Install project dependencies first."
            ) from exc

        request = AWSRequest(method=method.upper(), url=url, headers=dict(headers))
        credentials = Credentials(self._access_key_id, self._secret_access_key)
        SigV4Auth(credentials, self._service, self._region).add_auth(request)
        return {key: value for key, value in request.headers.items()}


__all__ = ["SigV4RequestSigner"]

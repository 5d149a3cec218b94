"""Helpers for building fake upstream responses."""

import requests
from requests.structures import CaseInsensitiveDict


def make_response(status=200, body=b"", headers=None, url="https://cdn.example.com/x"):
    """A real requests.Response whose body is already in memory."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    response = requests.Response()
    response.status_code = status
    response._content = body
    response._content_consumed = True
    response.headers = CaseInsensitiveDict(headers or {})
    response.url = url
    response.encoding = "utf-8"
    return response

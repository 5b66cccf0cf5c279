import json

import httpx


def json_body(request: httpx.Request):
    return json.loads(request.content or b"null")

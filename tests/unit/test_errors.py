import json
from kubernetes_asyncio.client import ApiException
from aerospike_operator.utils.errors import already_exists_error, not_found_error


def _api_exception(status, reason):
    ex = ApiException(status=status, reason=reason)
    ex.body = json.dumps({"kind": "Status", "reason": reason})
    return ex


class TestApiErrors:
    def test_already_exists(self):
        assert already_exists_error(_api_exception(409, "AlreadyExists"))
        assert not already_exists_error(_api_exception(409, "Conflict"))
        assert not already_exists_error(ValueError("409"))

    def test_not_found(self):
        assert not_found_error(ApiException(status=404))
        assert not_found_error(_api_exception(404, "NotFound"))
        assert not not_found_error(_api_exception(500, "InternalError"))

    def test_unparsable_body(self):
        ex = ApiException(status=409, reason="Conflict")
        ex.body = "<html>"
        assert not already_exists_error(ex)

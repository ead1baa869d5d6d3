"""
ModelRecord Schema 测试
"""
import pytest
from pydantic import ValidationError

from civitai_checker.lib.cache.schema import ModelRecord, cache_key
from tests.mocks import make_record


def test_cache_key_format():
    assert cache_key(12, 34) == "12-34"
    assert make_record().key == "100-200"


def test_requires_ids():
    """modelId / versionId 必填"""
    with pytest.raises(ValidationError):
        ModelRecord.model_validate({"modelName": "x"})


def test_populate_by_field_name():
    record = ModelRecord(model_id=1, version_id=2, model_type="LORA")
    assert record.model_type == "LORA"
    assert record.to_storage()["type"] == "LORA"


def test_none_text_fields_become_empty():
    """API 返回 null 的文本字段规范化为空字符串"""
    record = ModelRecord.model_validate({"modelId": 1, "versionId": 2, "modelName": None, "baseModel": None})
    assert record.model_name == ""
    assert record.base_model == ""


def test_author_alias():
    record = ModelRecord.model_validate({"modelId": 1, "versionId": 2, "author": "bob"})
    assert record.username == "bob"


def test_to_storage_uses_canonical_names():
    """写入始终使用 camelCase，省略空值"""
    data = ModelRecord.model_validate({"modelId": 1, "modelVersionId": 2, "modelVersionName": "V"}).to_storage()
    assert data["versionId"] == 2
    assert data["versionName"] == "V"
    assert "modelVersionId" not in data
    assert "fileId" not in data


class TestPrimaryFileName:

    def test_prefers_primary_file(self):
        record = make_record(primaryFile={"name": "real.ckpt", "id": 1}, fileName="other.safetensors")
        assert record.primary_file_name == "real.ckpt"

    def test_falls_back_to_file_name(self):
        assert make_record().primary_file_name == "foo_v1.safetensors"

    def test_empty_when_absent(self):
        assert make_record(fileName=None).primary_file_name == ""

"""
文件名模板引擎测试

覆盖: 占位符替换（两套占位符）、保留字符清理、下划线合并、扩展名策略
"""
import re

import pytest

from civitai_checker.lib.download.settings import DEFAULT_TEMPLATE, ExtensionMode
from civitai_checker.lib.download.template import (
    finalize_file_name,
    generate_file_name,
    get_file_extension,
    sanitize_file_name,
    template_variables,
)
from tests.mocks import make_record

RESERVED = re.compile(r'[<>:"/\\|?*]')


class TestSanitize:

    def test_strips_reserved_chars(self):
        assert sanitize_file_name('a<b>c:d"e/f\\g|h?i*j') == "abcdefghij"

    def test_empty_becomes_missing(self):
        assert sanitize_file_name(None) == "_"
        assert sanitize_file_name("   ") == "_"
        assert sanitize_file_name("???") == "_"

    def test_replace_spaces(self):
        assert sanitize_file_name("My  Model v2", replace_spaces=True) == "My_Model_v2"
        assert sanitize_file_name("My Model") == "My Model"

    @pytest.mark.parametrize("value", ["Foo: Bar", "  a/b  ", "x||y", "plain"])
    def test_idempotent(self, value: str):
        """清理已清理过的值结果不变"""
        once = sanitize_file_name(value)
        assert sanitize_file_name(once) == once

    def test_finalize_collapses_underscores(self):
        assert finalize_file_name("a__b___c") == "a_b_c"


class TestGenerateFileName:

    def test_record_field_placeholders(self):
        """{type}_{modelName}_v{versionName}_{baseModel} 生成预期文件名"""
        record = make_record(fileName=None)
        name = generate_file_name(record, "{type}_{modelName}_v{versionName}_{baseModel}")
        assert name == "Checkpoint_Foo_v1_SD1.5.safetensors"

    def test_version_prefix_only_deduplicated_after_v(self):
        record = make_record(versionName="v2")
        assert generate_file_name(record, "{modelName} {versionName}") == "Foo v2.safetensors"
        assert generate_file_name(record, "{modelName}_v{versionName}") == "Foo_v2.safetensors"

    def test_default_template(self):
        name = generate_file_name(make_record())
        assert name == "[alice] SD1.5 - foo_v1 (2024-03-05_10-20-30).safetensors"

    def test_none_template_uses_default(self):
        record = make_record()
        assert generate_file_name(record, None) == generate_file_name(record, DEFAULT_TEMPLATE)

    def test_snake_case_placeholders(self):
        record = make_record()
        name = generate_file_name(
            record,
            "{model_id}-{model_version_id}-{file_id}-{model_version_name}-{model_type}-{updated_at}_{updated_time}",
        )
        assert name == "100-200-300-v1-Checkpoint-2024-04-01_08-00-00.safetensors"

    def test_unknown_placeholder_becomes_underscore(self):
        """未知占位符替换为 _，连续下划线合并"""
        name = generate_file_name(make_record(), "{modelName}_{nope}_{versionName}")
        assert name == "Foo_v1.safetensors"

    def test_missing_fields(self):
        """缺失字段替换为 _"""
        record = make_record(username=None, createdAt=None, baseModel="")
        name = generate_file_name(record, "{author}-{created_at}-{base_model}")
        assert name == "_-_-_.safetensors"

    def test_reserved_chars_from_values_removed(self):
        record = make_record(modelName='My: "Best"/Model?', versionName="1.0|final")
        name = generate_file_name(record, "{modelName} {versionName}")
        assert not RESERVED.search(name)
        assert name == "My BestModel 1.0final.safetensors"

    def test_reserved_chars_from_template_removed(self):
        name = generate_file_name(make_record(), "<{modelName}>/{type}")
        assert name == "FooCheckpoint.safetensors"

    def test_known_extension_not_duplicated(self):
        name = generate_file_name(make_record(), "{modelName}.ckpt")
        assert name == "Foo.ckpt"

    def test_primary_file_extension_mode(self):
        """primary_file 模式追加主文件的扩展名"""
        record = make_record(primaryFile={"name": "foo.pt"})
        name = generate_file_name(record, "{modelName}", extension_mode=ExtensionMode.PRIMARY_FILE)
        assert name == "Foo.pt"

    def test_primary_file_mode_without_extension(self):
        record = make_record(fileName=None)
        assert generate_file_name(record, "{modelName}", extension_mode=ExtensionMode.PRIMARY_FILE) == "Foo"

    def test_replace_spaces_setting(self):
        record = make_record(modelName="Big Model")
        assert generate_file_name(record, "{modelName}", replace_spaces=True) == "Big_Model.safetensors"

    def test_deterministic(self):
        record = make_record()
        assert generate_file_name(record) == generate_file_name(record)

    @pytest.mark.parametrize("template", [
        "{modelName}__{versionName}",
        "{nope}{nope}{nope}",
        '<>:"/\\|?*',
        "___{type}___",
        "{author} / {base_model} : {file_name}",
    ])
    def test_output_never_contains_reserved_or_double_underscore(self, template: str):
        record = make_record(modelName="a_", versionName="_b", username="x?y")
        name = generate_file_name(record, template)
        assert not RESERVED.search(name)
        assert "__" not in name

    def test_sanitization_idempotent_on_output(self):
        name = generate_file_name(make_record(modelName="a: b"), "{modelName}")
        assert finalize_file_name(name) == name


class TestVariables:

    def test_file_name_without_extension(self):
        variables = template_variables(make_record())
        assert variables["file_name"] == "foo_v1"
        assert variables["fileName"] == "foo_v1"

    def test_dates_in_utc(self):
        variables = template_variables(make_record(createdAt="2024-03-05T23:30:00+08:00"))
        assert variables["created_at"] == "2024-03-05"
        assert variables["created_time"] == "15-30-00"

    def test_get_file_extension(self):
        assert get_file_extension("Model.SafeTensors") == ".safetensors"
        assert get_file_extension("noext") == ""
        assert get_file_extension(None) == ""

"""
Unit tests for the TMDL function store (src/dax_udf_sync/local/tmdl_store.py)

Tests covering:
- Parsing indented, inline and fenced function expressions
- Descriptions and property lines
- Verbatim write-back of untouched blocks (including CRLF files)
- Replacing and appending functions
"""

from unittest.mock import patch

import pytest

from dax_udf_sync.domain.function import FunctionDefinition
from dax_udf_sync.local.base import FunctionStoreError
from dax_udf_sync.local.tmdl_store import (
    TmdlFunctionStore,
    parse_tmdl,
    quote_name,
    render_function,
    unquote_name,
)

FUNCTIONS_TMDL = (
    "/// Adds VAT to an amount\n"
    "function 'Local.AddTax' =\n"
    "\t\t(amount : NUMERIC) =>\n"
    "\t\t\tamount * 1.2\n"
    "\n"
    "\tlineageTag: 6f0f2f59-aaaa-bbbb-cccc-000000000001\n"
    "\n"
    "function Double = (x : INT64) => x * 2\n"
    "\n"
    "function 'Text.Greet' = ```\n"
    "\t\t(name : STRING) =>\n"
    "\n"
    "\t\t\t\"Hello \" & name\n"
    "\t\t```\n"
    "\n"
    "\tannotation Note = fenced\n"
)


@pytest.fixture
def model_dir(tmp_path):
    definition = tmp_path / "Sales.SemanticModel" / "definition"
    definition.mkdir(parents=True)
    (definition / "functions.tmdl").write_text(FUNCTIONS_TMDL, encoding="utf-8", newline="")
    return tmp_path / "Sales.SemanticModel"


class TestNames:
    """Quoting of TMDL object names."""

    def test_plain_identifier_unquoted(self):
        assert quote_name("Double") == "Double"

    def test_dotted_name_quoted(self):
        assert quote_name("Local.AddTax") == "'Local.AddTax'"

    def test_embedded_quote_doubled(self):
        assert quote_name("O'Brien Tax") == "'O''Brien Tax'"
        assert unquote_name("'O''Brien Tax'") == "O'Brien Tax"


class TestParse:
    """Parsing functions.tmdl text."""

    def test_indented_expression_with_description_and_properties(self):
        store_functions = [b.definition for b in parse_tmdl(FUNCTIONS_TMDL) if hasattr(b, "definition")]

        add_tax = store_functions[0]
        assert add_tax.name == "Local.AddTax"
        assert add_tax.expression == "(amount : NUMERIC) =>\n\tamount * 1.2"
        assert add_tax.description == "Adds VAT to an amount"
        assert add_tax.properties == ["lineageTag: 6f0f2f59-aaaa-bbbb-cccc-000000000001"]

    def test_inline_expression(self):
        functions = [b.definition for b in parse_tmdl(FUNCTIONS_TMDL) if hasattr(b, "definition")]

        assert functions[1].name == "Double"
        assert functions[1].expression == "(x : INT64) => x * 2"
        assert functions[1].properties == []

    def test_fenced_expression_keeps_blank_lines(self):
        functions = [b.definition for b in parse_tmdl(FUNCTIONS_TMDL) if hasattr(b, "definition")]

        greet = functions[2]
        assert greet.name == "Text.Greet"
        assert greet.expression == "(name : STRING) =>\n\n\t\"Hello \" & name"
        assert greet.properties == ["annotation Note = fenced"]

    def test_blank_line_inside_indented_expression(self):
        text = "function F =\n\t\tVAR a = 1\n\n\t\tRETURN a\n"

        (block,) = parse_tmdl(text)

        assert block.definition.expression == "VAR a = 1\n\nRETURN a"

    def test_unterminated_fence_raises(self):
        with pytest.raises(FunctionStoreError, match="Unterminated"):
            parse_tmdl("function F = ```\n\t\t1\n")

    def test_non_function_lines_kept_as_raw_blocks(self):
        blocks = parse_tmdl("createOrReplace\n\n\tref x\nfunction F = 1\n")

        assert blocks[0].lines == ["createOrReplace", "", "\tref x"]
        assert blocks[1].definition.name == "F"


class TestRender:
    """Rendering a function back to TMDL."""

    def test_render_with_description_and_properties(self):
        definition = FunctionDefinition(
            name="Local.AddTax",
            expression="(amount : NUMERIC) =>\r\n\tamount * 1.2  \r\n",
            description="Adds VAT",
            properties=["lineageTag: 1"],
        )

        assert render_function(definition) == [
            "/// Adds VAT",
            "function 'Local.AddTax' =",
            "\t\t(amount : NUMERIC) =>",
            "\t\t\tamount * 1.2",
            "",
            "\tlineageTag: 1",
        ]

    def test_rendered_function_parses_back(self):
        definition = FunctionDefinition(name="F", expression="VAR a = 1\n\nRETURN a", description="Line one\nLine two")

        (block,) = parse_tmdl("\n".join(render_function(definition)) + "\n")

        assert block.definition.expression == definition.expression
        assert block.definition.description == definition.description


class TestTmdlFunctionStore:
    """Reading and writing functions.tmdl on disk."""

    def test_resolves_semantic_model_folder(self, model_dir):
        store = TmdlFunctionStore(model_dir)

        assert store.location == str(model_dir / "definition" / "functions.tmdl")
        assert [f.name for f in store.list_functions()] == ["Local.AddTax", "Double", "Text.Greet"]

    def test_get_is_case_insensitive(self, model_dir):
        store = TmdlFunctionStore(model_dir)

        assert store.get("local.addtax").name == "Local.AddTax"
        assert store.get("Nope") is None

    def test_untouched_file_renders_verbatim(self, model_dir):
        store = TmdlFunctionStore(model_dir)

        assert store.render() == FUNCTIONS_TMDL

    def test_save_without_changes_does_not_write(self, model_dir):
        path = model_dir / "definition" / "functions.tmdl"
        path.write_text(FUNCTIONS_TMDL + "\n\n", encoding="utf-8", newline="")
        store = TmdlFunctionStore(model_dir)

        store.save()

        assert path.read_text(encoding="utf-8") == FUNCTIONS_TMDL + "\n\n"

    def test_replace_keeps_description_properties_and_neighbours(self, model_dir):
        store = TmdlFunctionStore(model_dir)

        store.upsert(FunctionDefinition(name="LOCAL.ADDTAX", expression="(amount : NUMERIC) =>\n\tamount * 1.25\n"))
        store.save()

        text = (model_dir / "definition" / "functions.tmdl").read_text(encoding="utf-8")
        assert text == FUNCTIONS_TMDL.replace("amount * 1.2\n", "amount * 1.25\n")

    def test_append_new_function(self, model_dir):
        store = TmdlFunctionStore(model_dir)

        store.upsert(FunctionDefinition(name="Local.Triple", expression="(x : INT64) => x * 3"))
        store.save()

        text = (model_dir / "definition" / "functions.tmdl").read_text(encoding="utf-8")
        assert text == FUNCTIONS_TMDL + "\nfunction 'Local.Triple' =\n\t\t(x : INT64) => x * 3\n"
        assert [f.name for f in TmdlFunctionStore(model_dir).list_functions()][-1] == "Local.Triple"

    def test_crlf_preserved_and_bom_dropped(self, tmp_path):
        path = tmp_path / "functions.tmdl"
        original = "function F = 1\r\n\r\nfunction G = 2\r\n"
        path.write_bytes(b"\xef\xbb\xbf" + original.encode("utf-8"))
        store = TmdlFunctionStore(path)

        assert store.get("F").expression == "1"
        store.upsert(FunctionDefinition(name="G", expression="3"))
        store.save()

        assert path.read_bytes() == b"function F = 1\r\n\r\nfunction G =\r\n\t\t3\r\n"

    def test_missing_file_starts_empty_and_is_created(self, tmp_path):
        store = TmdlFunctionStore(tmp_path / "Model.SemanticModel")

        assert store.list_functions() == []
        store.upsert(FunctionDefinition(name="F", expression="1"))
        store.save()

        assert (tmp_path / "Model.SemanticModel" / "functions.tmdl").read_text(encoding="utf-8") == (
            "function F =\n\t\t1\n"
        )

    def test_write_failure_raises_store_error(self, model_dir):
        store = TmdlFunctionStore(model_dir)
        store.upsert(FunctionDefinition(name="New.Function", expression="1"))

        with patch("dax_udf_sync.local.tmdl_store.open", side_effect=PermissionError("read-only"), create=True):
            with pytest.raises(FunctionStoreError, match="Cannot write .*read-only"):
                store.save()

"""
Tests for schema loading and compilation.
"""

import json

import pytest


def compiled(raw: dict):
    from memorymesh.compiler import compile_schema
    from memorymesh.models import SchemaDocument
    return compile_schema(SchemaDocument.model_validate(raw))


@pytest.fixture
def npc(raw_schemas):
    return compiled(raw_schemas["npc"])


@pytest.fixture
def quest(raw_schemas):
    return compiled(raw_schemas["quest"])


@pytest.fixture
def location(raw_schemas):
    return compiled(raw_schemas["location"])


# ============== Tests for schema loading ==============

class TestLoadSchemas:
    """Tests for the schema directory loader."""

    async def test_loads_in_filename_order(self, schemas_dir):
        """Test only *.schema.json files are loaded, sorted by file name."""
        from memorymesh.schema import load_schemas

        documents = await load_schemas(schemas_dir)

        assert [d.name for d in documents] == ["add_location", "add_npc", "add_quest"]

    async def test_missing_directory(self, tmp_path):
        """Test a missing directory is a schema error."""
        from memorymesh.schema import load_schemas
        from memorymesh.utils import SchemaError

        with pytest.raises(SchemaError):
            await load_schemas(tmp_path / "nope")

    async def test_unreadable_directory(self, schemas_dir, monkeypatch):
        """Test a directory that cannot be listed is a schema error."""
        from pathlib import Path

        from memorymesh.schema import load_schemas
        from memorymesh.utils import SchemaError

        def denied(self):
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr(Path, "iterdir", denied)

        with pytest.raises(SchemaError, match="Cannot list schema directory"):
            await load_schemas(schemas_dir)

    async def test_non_utf8_file(self, schemas_dir):
        from memorymesh.schema import load_schemas
        from memorymesh.utils import SchemaError

        (schemas_dir / "add_latin.schema.json").write_bytes(b"{\"name\": \"add_caf\xe9\"}")

        with pytest.raises(SchemaError, match="add_latin.schema.json"):
            await load_schemas(schemas_dir)

    async def test_invalid_json(self, schemas_dir):
        """Test a file that is not JSON fails the whole load."""
        from memorymesh.schema import load_schemas
        from memorymesh.utils import SchemaError

        (schemas_dir / "add_broken.schema.json").write_text("{ nope", encoding="utf-8")

        with pytest.raises(SchemaError, match="add_broken.schema.json"):
            await load_schemas(schemas_dir)

    async def test_duplicate_names(self, schemas_dir, raw_schemas):
        """Test two files declaring the same schema name are rejected."""
        from memorymesh.schema import load_schemas
        from memorymesh.utils import SchemaError

        (schemas_dir / "zz_copy.schema.json").write_text(json.dumps(raw_schemas["npc"]), encoding="utf-8")

        with pytest.raises(SchemaError, match="already defined"):
            await load_schemas(schemas_dir)

    def test_unknown_property_type(self):
        """Test a property type outside the supported set is rejected."""
        from memorymesh.schema import parse_schema
        from memorymesh.utils import SchemaError

        text = json.dumps({"name": "add_x", "properties": {"name": {"type": "date"}}})

        with pytest.raises(SchemaError):
            parse_schema(text)

    async def test_bundled_schemas_load(self):
        """Test the schemas shipped with the package compile."""
        from memorymesh.compiler import compile_tools
        from memorymesh.config import PACKAGE_DIR
        from memorymesh.schema import load_schemas

        documents = await load_schemas(PACKAGE_DIR / "data" / "schemas")

        names = [tool.name for document in documents for tool in compile_tools(document)]
        assert "add_npc" in names
        assert "update_quest" in names
        assert "delete_location" in names


# ============== Tests for compilation ==============

class TestCompileSchema:
    """Tests for compile_schema."""

    def test_node_type_from_name(self, raw_schemas):
        """Test the node type is the schema name without its add_ prefix."""
        assert compiled(raw_schemas["npc"]).node_type == "npc"
        assert compiled({**raw_schemas["location"], "name": "location"}).node_type == "location"

    def test_relationship_fields(self, raw_schemas):
        """Test relationship fields are split from metadata fields."""
        schema = compiled(raw_schemas["npc"])

        assert schema.edge_types == {"currentLocation": "located_in", "allies": "allied_with"}
        assert [f.name for f in schema.metadata_fields] == ["role", "status", "description", "traits"]
        assert schema.required_fields == frozenset({"name", "role", "status", "currentLocation", "description"})

    def test_name_field_added_when_missing(self):
        """Test a schema without a name property still requires a name."""
        schema = compiled({"name": "add_item", "properties": {"weight": {"type": "number"}}})

        assert schema.fields[0].name == "name"
        assert "name" in schema.required_fields

    def test_non_string_name_rejected(self):
        from memorymesh.utils import SchemaError

        with pytest.raises(SchemaError):
            compiled({"name": "add_item", "properties": {"name": {"type": "integer"}}})

    def test_relationship_must_hold_names(self):
        """Test a relationship on a non-string field is rejected."""
        from memorymesh.utils import SchemaError

        raw = {
            "name": "add_item",
            "properties": {"owner": {"type": "integer", "relationship": {"edgeType": "owned_by"}}},
        }
        with pytest.raises(SchemaError, match="owner"):
            compiled(raw)

    def test_deterministic(self, raw_schemas):
        """Test compiling the same document twice gives equal results."""
        first = compiled(raw_schemas["npc"])
        second = compiled(json.loads(json.dumps(raw_schemas["npc"])))

        assert first == second
        assert first.input_schema() == second.input_schema()

    def test_input_schema(self, raw_schemas):
        """Test the generated JSON schema for add and update."""
        schema = compiled(raw_schemas["quest"])

        add_schema = schema.input_schema()
        assert add_schema["required"] == ["name", "description", "status", "objectives"]
        assert add_schema["additionalProperties"] is False
        assert add_schema["properties"]["status"]["enum"] == ["Active", "Completed", "Failed"]
        assert add_schema["properties"]["objectives"]["items"] == {"type": "string"}
        assert "given_by" in add_schema["properties"]["questGiver"]["description"]

        assert schema.input_schema(partial=True)["required"] == ["name"]


# ============== Tests for argument validation ==============

class TestValidate:
    """Tests for CompiledSchema.validate."""

    def valid_npc(self, **overrides):
        arguments = {
            "name": "Garrick",
            "role": "Blacksmith",
            "status": "Alive",
            "currentLocation": "Tavern",
            "description": "Burly",
        }
        arguments.update(overrides)
        return arguments

    def test_valid(self, npc):
        assert npc.validate(self.valid_npc())["name"] == "Garrick"

    def test_missing_required_field_named(self, npc):
        """Test the error names the missing field."""
        from memorymesh.utils import ValidationError

        arguments = self.valid_npc()
        del arguments["currentLocation"]

        with pytest.raises(ValidationError) as exc_info:
            npc.validate(arguments)
        assert exc_info.value.field == "currentLocation"
        assert "currentLocation" in str(exc_info.value)

    def test_none_counts_as_missing(self, npc):
        from memorymesh.utils import ValidationError

        with pytest.raises(ValidationError):
            npc.validate(self.valid_npc(role=None))

    def test_enum_violation(self, npc):
        """Test a value outside the enum lists the allowed values."""
        from memorymesh.utils import ValidationError

        with pytest.raises(ValidationError, match="Alive, Deceased, Unknown") as exc_info:
            npc.validate(self.valid_npc(status="Sleeping"))
        assert exc_info.value.field == "status"

    @pytest.mark.parametrize("field,value", [
        ("role", 5),
        ("traits", "strong"),
        ("traits", ["strong", 3]),
        ("allies", "Mira"),
    ])
    def test_wrong_type(self, field, value, npc):
        from memorymesh.utils import ValidationError

        with pytest.raises(ValidationError) as exc_info:
            npc.validate(self.valid_npc(**{field: value}))
        assert exc_info.value.field == field

    def test_integer_rejects_bool(self, location):
        from memorymesh.utils import ValidationError

        arguments = {"name": "Town", "description": "Quiet", "population": True}
        with pytest.raises(ValidationError):
            location.validate(arguments)

    def test_empty_relationship_target(self, npc):
        from memorymesh.utils import ValidationError

        with pytest.raises(ValidationError, match="empty node name"):
            npc.validate(self.valid_npc(currentLocation="  "))

    def test_additional_properties_false(self, quest):
        """Test unknown fields are rejected when extras are not allowed."""
        from memorymesh.utils import ValidationError

        arguments = {"name": "Q", "description": "d", "status": "Active", "objectives": ["x"], "secret": 1}
        with pytest.raises(ValidationError) as exc_info:
            quest.validate(arguments)
        assert exc_info.value.field == "secret"

    def test_partial_requires_only_name(self, npc):
        assert npc.validate({"name": "Garrick", "status": "Deceased"}, partial=True) == {
            "name": "Garrick",
            "status": "Deceased",
        }

    def test_partial_still_checks_types(self, npc):
        from memorymesh.utils import ValidationError

        with pytest.raises(ValidationError):
            npc.validate({"name": "Garrick", "status": "Sleeping"}, partial=True)

    def test_blank_name(self, npc):
        from memorymesh.utils import ValidationError

        with pytest.raises(ValidationError, match="name"):
            npc.validate(self.valid_npc(name="   "))


# ============== Tests for rendering ==============

class TestRender:
    """Tests for metadata rendering and edge extraction."""

    def test_render_metadata_order(self, npc):
        """Test declared order, labels, list joining and skipped relationships."""
        arguments = {
            "name": "Garrick",
            "description": "Burly",
            "status": "Alive",
            "role": "Blacksmith",
            "currentLocation": "Tavern",
            "traits": ["strong", "gruff"],
            "mood": "grumpy",
            "isHostile": False,
        }

        assert npc.render_metadata(arguments) == [
            "Role: Blacksmith",
            "Status: Alive",
            "Description: Burly",
            "Traits: strong, gruff",
            "Mood: grumpy",
            "IsHostile: false",
        ]

    def test_render_skips_empty_arrays(self, npc):
        assert "Traits: " not in "".join(npc.render_metadata({"name": "G", "traits": []}))

    def test_cleared_labels(self, npc):
        """Test empty lists name metadata labels to clear, but never relationships."""
        cleared = npc.cleared_labels({"name": "G", "traits": [], "allies": [], "mood": [], "role": "Smith"})

        assert cleared == {"Traits", "Mood"}

    def test_extract_edges(self, npc):
        """Test one edge per target, trimmed and de-duplicated."""
        edges = npc.extract_edges("Garrick", {
            "currentLocation": " Tavern ",
            "allies": ["Mira", "Bran", "Mira"],
        })

        assert [(e.target, e.edge_type) for e in edges["located_in"]] == [("Tavern", "located_in")]
        assert [e.target for e in edges["allied_with"]] == ["Mira", "Bran"]
        assert all(e.source == "Garrick" for bucket in edges.values() for e in bucket)

    def test_extract_edges_empty_list(self, npc):
        """Test an empty relationship list yields an empty bucket for replacement."""
        assert npc.extract_edges("Garrick", {"allies": []}) == {"allied_with": []}

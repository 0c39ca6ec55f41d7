"""
Unit tests for record layouts, the layout registry and its builders.
"""

import pytest
from pydantic import ValidationError

from opi_loader.core.layouts import (
    DescriptorParser,
    LayoutConfigLoader,
    LayoutRegistry,
    build_registry_from_descriptors,
    load_catalog,
)
from opi_loader.core.models import FieldKind, FieldSpec, ForeignKey, RecordLayout, Table
from opi_loader.errors import LayoutConfigurationError, UnknownLayoutError

OFFENDER_DES = """\
CMDORNUM      OFFENDER NC DOC ID NUMBER          CHAR      1       7
CMLSTNME      OFFENDER LAST NAME                 CHAR      8       20
CMBIRTDT      OFFENDER BIRTH DATE                DATE      28      10
"""

FINANCIAL_DES = """\
FIELD         DESCRIPTION                        TYPE    START  LENGTH

CIDORNUM      OFFENDER NC DOC ID NUMBER          CHAR      1       7
CPCOPBAL      COP BALANCE                        DECIMAL   8       11
DTOFUPDT      DATE OF LAST UPDATE                DATE      19      10
TMOFUPDT      TIME OF LAST UPDATE                TIME      29      8
"""


class TestRecordLayout:
    """Tests for RecordLayout validation"""

    def test_table_name_derived_from_name(self, person_layout):
        assert person_layout.table_name == "person"

    def test_explicit_table_name_kept(self):
        layout = RecordLayout(
            file_id="X",
            name="Court Commmitment",
            table_name="commitments",
            record_width=2,
            fields=[FieldSpec(name="ID", offset=0, length=2)],
        )
        assert layout.table_name == "commitments"

    def test_field_beyond_record_width(self):
        with pytest.raises(ValidationError, match="beyond record width"):
            RecordLayout(
                file_id="X",
                name="X",
                record_width=4,
                fields=[FieldSpec(name="ID", offset=2, length=3)],
            )

    def test_overlapping_fields(self):
        with pytest.raises(ValidationError, match="overlaps"):
            RecordLayout(
                file_id="X",
                name="X",
                record_width=10,
                fields=[
                    FieldSpec(name="A", offset=0, length=4),
                    FieldSpec(name="B", offset=3, length=4),
                ],
            )

    def test_duplicate_field_names(self):
        with pytest.raises(ValidationError, match="Duplicate field"):
            RecordLayout(
                file_id="X",
                name="X",
                record_width=10,
                fields=[
                    FieldSpec(name="A", offset=0, length=4),
                    FieldSpec(name="A", offset=4, length=4),
                ],
            )

    def test_nullable_primary_key_rejected(self):
        with pytest.raises(ValidationError, match="cannot be nullable"):
            RecordLayout(
                file_id="X",
                name="X",
                record_width=4,
                primary_key=["A"],
                fields=[FieldSpec(name="A", offset=0, length=4)],
            )

    def test_unknown_foreign_key_field(self):
        with pytest.raises(ValidationError, match="Foreign key field"):
            RecordLayout(
                file_id="X",
                name="X",
                record_width=4,
                foreign_keys={"MISSING": ForeignKey(file_id="A", field_name="ID")},
                fields=[FieldSpec(name="A", offset=0, length=4)],
            )

    def test_scale_cannot_exceed_length(self):
        with pytest.raises(ValidationError):
            FieldSpec(name="A", offset=0, length=2, kind=FieldKind.DECIMAL, scale=3)

    def test_layout_is_immutable(self, person_layout):
        with pytest.raises(ValidationError):
            person_layout.record_width = 99

    def test_key_field(self, person_layout, visit_layout):
        assert person_layout.key_field == "ID"
        assert visit_layout.key_field is None


class TestLayoutRegistry:
    """Tests for LayoutRegistry"""

    def test_lookup(self, registry, person_layout):
        assert registry.get("A") == person_layout
        assert "B" in registry
        assert len(registry) == 2
        assert registry.file_ids() == ["A", "B"]

    def test_unknown_layout(self, registry):
        with pytest.raises(UnknownLayoutError) as exc_info:
            registry.get("Z")

        assert exc_info.value.file_id == "Z"

    def test_dependents_of(self, registry):
        assert [layout.file_id for layout in registry.dependents_of("A")] == ["B"]
        assert registry.dependents_of("B") == []

    def test_duplicate_file_id(self, person_layout):
        with pytest.raises(LayoutConfigurationError, match="Duplicate layout"):
            LayoutRegistry([person_layout, person_layout])

    def test_foreign_key_to_unknown_file(self, visit_layout):
        with pytest.raises(LayoutConfigurationError, match="unknown file"):
            LayoutRegistry([visit_layout])

    def test_foreign_key_must_target_primary_key(self, person_layout, visit_layout):
        bad = visit_layout.model_copy(
            update={"foreign_keys": {"PID": ForeignKey(file_id="A", field_name="NAME")}}
        )
        with pytest.raises(LayoutConfigurationError, match="not the single primary key"):
            LayoutRegistry([person_layout, bad])

    def test_foreign_key_kind_mismatch(self, person_layout):
        dependent = RecordLayout(
            file_id="C",
            name="C",
            record_width=2,
            foreign_keys={"PID": ForeignKey(file_id="A", field_name="ID")},
            fields=[FieldSpec(name="PID", offset=0, length=2, kind=FieldKind.INTEGER)],
        )
        with pytest.raises(LayoutConfigurationError, match="differ in kind"):
            LayoutRegistry([person_layout, dependent])


class TestTable:
    """Tests for Table.from_layout"""

    def test_columns_follow_layout(self, registry, visit_layout):
        table = Table.from_layout(visit_layout, registry)

        assert table.name == "visit"
        assert table.column_names == ["pid", "visited", "cost"]
        assert table.primary_key == []
        assert len(table.foreign_keys) == 1
        fk = table.foreign_keys[0]
        assert (fk.column, fk.referenced_table, fk.referenced_column) == ("pid", "person", "id")

    def test_primary_key_column(self, registry, person_layout):
        table = Table.from_layout(person_layout, registry)

        assert table.primary_key == ["id"]
        assert table.columns[0].nullable is False


class TestLayoutConfigLoader:
    """Tests for YAML layout files"""

    def test_load_registry(self, tmp_path):
        path = tmp_path / "layouts.yaml"
        path.write_text(
            """
layouts:
  - file_id: A
    name: Person
    record_width: 12
    primary_key: [ID]
    fields:
      - {name: ID, offset: 0, length: 2, kind: code, nullable: false}
      - {name: NAME, offset: 2, length: 10, kind: text}
  - file_id: B
    name: Visit
    record_width: 10
    foreign_keys:
      PID: {file_id: A, field_name: ID}
    fields:
      - {name: PID, offset: 0, length: 2, kind: code}
      - {name: VISITED, offset: 2, length: 8, kind: date}
"""
        )
        registry = LayoutConfigLoader(path).load_registry()

        assert registry.file_ids() == ["A", "B"]
        assert registry.get("B").field("VISITED").kind == FieldKind.DATE
        assert registry.get("B").foreign_keys["PID"].file_id == "A"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LayoutConfigLoader(tmp_path / "missing.yaml")

    def test_missing_layouts_section(self, tmp_path):
        path = tmp_path / "layouts.yaml"
        path.write_text("files: []\n")

        with pytest.raises(LayoutConfigurationError, match="'layouts' section"):
            LayoutConfigLoader(path).load()

    def test_invalid_layout_wrapped(self, tmp_path):
        path = tmp_path / "layouts.yaml"
        path.write_text(
            """
layouts:
  - file_id: A
    name: Person
    record_width: 2
    fields:
      - {name: ID, offset: 0, length: 4}
"""
        )
        with pytest.raises(LayoutConfigurationError, match="Invalid layout A"):
            LayoutConfigLoader(path).load()


class TestCatalog:
    """Tests for the packaged file catalog"""

    def test_twelve_files(self):
        catalog = load_catalog()

        assert len(catalog.files) == 12
        assert catalog.default_reference == "OFNT3AA1"
        assert catalog.entry("OFNT3AA1").name == "Offender Profile"
        assert all(entry.dat_sha256 for entry in catalog.files)

    def test_key_field_priority(self):
        catalog = load_catalog()

        assert catalog.find_key_field(["X", "CIDORNUM", "CMDORNUM"]) == "CMDORNUM"
        assert catalog.find_key_field(["CDDORNUM"]) == "CDDORNUM"
        assert catalog.find_key_field(["X"]) is None

    def test_unknown_entry(self):
        with pytest.raises(UnknownLayoutError):
            load_catalog().entry("NOPE")


class TestDescriptorParser:
    """Tests for .des descriptor parsing"""

    def test_parse_fields(self):
        fields = DescriptorParser().parse(FINANCIAL_DES)

        assert [f.name for f in fields] == ["CIDORNUM", "CPCOPBAL", "DTOFUPDT", "TMOFUPDT"]
        balance = fields[1]
        assert (balance.offset, balance.length, balance.kind) == (7, 11, FieldKind.DECIMAL)
        assert balance.description == "COP BALANCE"
        assert fields[2].kind == FieldKind.DATE
        assert fields[2].pattern == "%Y-%m-%d"
        assert fields[3].kind == FieldKind.TIME

    def test_unmatched_lines_skipped(self):
        assert DescriptorParser().parse("no fields here\n\n") == []

    def test_unknown_type_is_text(self):
        fields = DescriptorParser().parse("XXCODE      SOMETHING ODD      BLOB    1    4\n")
        assert fields[0].kind == FieldKind.TEXT

    def test_duplicate_code_keeps_first(self):
        fields = DescriptorParser().parse(
            "CMDORNUM      FIRST      CHAR   1   7\n"
            "CMDORNUM      SECOND     CHAR   8   7\n"
        )
        assert len(fields) == 1
        assert fields[0].description == "FIRST"

    def test_build_registry(self):
        catalog = load_catalog()
        registry = build_registry_from_descriptors(
            catalog,
            {"OFNT3AA1": OFFENDER_DES, "OFNT1BA1": FINANCIAL_DES},
            "OFNT3AA1",
        )

        reference = registry.get("OFNT3AA1")
        assert reference.primary_key == ["CMDORNUM"]
        assert reference.field("CMDORNUM").nullable is False
        assert reference.record_width == 37
        assert reference.framing == "newline"
        assert reference.table_name == "offender_profile"

        financial = registry.get("OFNT1BA1")
        assert financial.table_name == "financial_obligation"
        assert financial.foreign_keys["CIDORNUM"] == ForeignKey(file_id="OFNT3AA1", field_name="CMDORNUM")
        assert financial.field("CIDORNUM").nullable is True

    def test_unknown_reference(self):
        with pytest.raises(UnknownLayoutError):
            build_registry_from_descriptors(load_catalog(), {"OFNT3AA1": OFFENDER_DES}, "NOPE")

    def test_dependent_without_key_field(self):
        with pytest.raises(LayoutConfigurationError, match="no key field"):
            build_registry_from_descriptors(
                load_catalog(),
                {"OFNT3AA1": OFFENDER_DES, "INMT4BB1": "XXFIELD      SOMETHING      CHAR   1   4\n"},
                "OFNT3AA1",
            )

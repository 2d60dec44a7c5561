"""Unit tests for bulksql custom exceptions."""

import pytest

from bulksql.exceptions import (
    BulkSqlException,
    ConfigValidationError,
    ConnectionError,
    MissingMetadataError,
    MissingTableNameError,
    StagingOperationError,
    TransferError,
    UnmappedTypeError,
    UnreadableFieldError,
)


class TestInheritance:
    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigValidationError,
            ConnectionError,
            MissingMetadataError,
            MissingTableNameError,
            StagingOperationError,
            TransferError,
            UnmappedTypeError,
            UnreadableFieldError,
        ],
    )
    def test_all_exceptions_inherit_from_base(self, exc_class):
        assert issubclass(exc_class, BulkSqlException)


class TestStagingOperationError:
    def test_message_names_table_and_operation(self):
        cause = RuntimeError("deadlock victim")
        err = StagingOperationError("Users", "merge load", original_error=cause)
        assert err.table_name == "Users"
        assert err.operation == "merge load"
        assert err.original_error is cause
        assert "Unable to merge load Users" in str(err)
        assert "RuntimeError" in str(err)
        assert "deadlock victim" in str(err)

    def test_without_cause(self):
        err = StagingOperationError("Users", "join query")
        assert "Type:" not in str(err)


class TestTransferError:
    def test_fields(self):
        err = TransferError("#TmpTableUsers", 10, original_error=ValueError("bad type"))
        assert err.destination_table == "#TmpTableUsers"
        assert err.row_count == 10
        assert "Rows: 10" in str(err)
        assert "bad type" in str(err)


class TestMissingTableNameError:
    def test_with_record_type(self):
        class Widget:
            pass

        err = MissingTableNameError(Widget)
        assert "Widget" in str(err)

    def test_without_record_type(self):
        assert "table_name" in str(MissingTableNameError())


class TestUnmappedTypeError:
    def test_lists_available(self):
        err = UnmappedTypeError("guid", available=["string", "bit"])
        assert err.available == ["bit", "string"]
        assert "guid" in str(err)
        assert "bit, string" in str(err)


class TestUnreadableFieldError:
    def test_reason(self):
        err = UnreadableFieldError(dict, "name", reason="field is not gettable")
        assert "'name'" in str(err)
        assert "dict" in str(err)
        assert "not gettable" in str(err)


class TestConnectionError:
    def test_suggestions_numbered(self):
        err = ConnectionError("db", "timeout", suggestions=["Check firewall", "Retry later"])
        assert "1. Check firewall" in str(err)
        assert "2. Retry later" in str(err)


class TestConfigValidationError:
    def test_with_file(self):
        err = ConfigValidationError("bad value", file="bulksql.yaml")
        assert "File: bulksql.yaml" in str(err)
        assert "bad value" in str(err)


class TestMissingMetadataError:
    def test_names_type_and_table(self):
        class Widget:
            pass

        err = MissingMetadataError(Widget, "Widgets")
        assert err.record_type is Widget
        assert "No persisted fields declared for Widget for Widgets" in str(err)
        assert "@persisted" in str(err)

    def test_without_type(self):
        assert "declared for records" in str(MissingMetadataError())

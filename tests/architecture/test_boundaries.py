from pytest_archon import archrule


def test_core_independence() -> None:
    """
    Core module should not import from the Mongo adapter or its drivers.
    It is the foundation and must remain storage agnostic.
    """
    (
        archrule("core_is_independent")
        .match("entity_core*")
        .should_not_import("entity_mongo*")
        .should_not_import("motor*")
        .should_not_import("pymongo*")
        .should_not_import("bson*")
        .check("entity_core")
    )


def test_domain_isolation() -> None:
    """
    Domain layer should be self-contained.
    It must not import from ports or settings.
    """
    (
        archrule("domain_isolation")
        .match("entity_core.domain*")
        .should_not_import("entity_core.ports*")
        .should_not_import("entity_core.settings")
        .check("entity_core")
    )


def test_primitives_isolation() -> None:
    """
    Primitives layer is the lowest level.
    It must not import from domain, ports or settings.
    """
    (
        archrule("primitives_isolation")
        .match("entity_core.primitives*")
        .should_not_import("entity_core.domain*")
        .should_not_import("entity_core.ports*")
        .should_not_import("entity_core.settings")
        .check("entity_core")
    )


def test_codec_is_pure() -> None:
    """
    Mapping and routing never touch the connection layer.
    """
    (
        archrule("codec_is_pure")
        .match("entity_mongo.serialization")
        .match("entity_mongo.collection_resolver")
        .match("entity_mongo.query_builder")
        .should_not_import("entity_mongo.connection")
        .should_not_import("entity_mongo.adapter")
        .should_not_import("motor*")
        .check("entity_mongo")
    )

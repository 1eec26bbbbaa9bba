import pytest

from identity_sync.errors import InvariantViolation, ValidationError
from identity_sync.models.entities import (
    Account,
    AccountState,
    Claim,
    ClientUrl,
    Property,
    Secret,
    UrlType,
)
from identity_sync.reconcile.correlator import adopt_ids
from identity_sync.reconcile.planner import (
    plan_account_create,
    plan_account_update,
    plan_create,
    plan_update,
)


def _reconciled(make_client, **kwargs):
    """A client as it looks after a successful reconciliation."""
    client = make_client(**kwargs)
    next_id = 0
    for _, items in client.iter_collections():
        for item in items:
            next_id += 1
            item.id = next_id
    client.secrets = [Secret(id=90, value="s3cr3t")]
    client.stamp_owner(7)
    return client


def test_plan_create(make_client):
    plan = plan_create(make_client(claims=("read", "write")))

    assert plan.is_create
    assert plan.has_changes
    for attr, changes in plan.changes.items():
        assert changes.to_delete == []
        assert changes.to_create and all(i.id == 0 for i in changes.to_create), attr
    assert len(plan.secrets.to_create) == 1

    bare = plan.bare_payload()
    assert bare["name"] == "player-api"
    assert bare["redirectUrls"] == [] and bare["claims"] == [] and bare["secrets"] == []
    assert bare["managers"] == []

    payload = plan.to_payload()
    assert [c["value"] for c in payload["claims"]] == ["read", "write"]
    assert payload["secrets"] == []


def test_plan_create_rejects_invalid_declaration(make_client):
    with pytest.raises(InvariantViolation):
        plan_create(make_client(post_logout=()))


def test_plan_update_soft_deletes_removed_redirect(make_client):
    previous = _reconciled(make_client, redirect=("https://a", "https://b"))
    desired = adopt_ids(previous, make_client(redirect=("https://a",)))

    plan = plan_update(previous, desired)
    payload = plan.to_payload()

    assert [(u["value"], u["deleted"]) for u in payload["redirectUrls"]] == [
        ("https://b", True),
        ("https://a", False),
    ]
    assert all(u["clientId"] == 7 for u in payload["redirectUrls"])
    assert payload["id"] == 7
    assert plan.has_changes
    assert "- redirect URLs: https://b" in plan.summary()


def test_plan_update_refuses_to_leave_a_collection_empty(make_client):
    previous = _reconciled(make_client)
    desired = adopt_ids(previous, make_client())
    desired.claims = [c.model_copy(update={"deleted": True}) for c in desired.claims]

    with pytest.raises(InvariantViolation) as e:
        plan_update(previous, desired)
    assert e.value.collection == "claims"


def test_plan_update_is_idempotent(make_client):
    previous = _reconciled(make_client)
    desired = adopt_ids(previous, make_client())

    plan = plan_update(previous, desired)

    assert not plan.has_changes
    assert all(c.to_delete == [] for c in plan.changes.values())
    assert "No changes needed" in plan.summary()


def test_secret_values_never_leave_in_payload(make_client):
    previous = _reconciled(make_client)
    previous.secrets.append(Secret(id=91, value="other"))
    desired = adopt_ids(previous, make_client(secrets=1))

    plan = plan_update(previous, desired)
    payload = plan.to_payload()

    assert payload["secrets"] == [{"id": 91, "deleted": True}]
    assert "s3cr3t" not in str(payload)
    assert [s.value for s in plan.secrets.unchanged] == ["s3cr3t"]


def test_attribute_change_is_detected(make_client):
    previous = _reconciled(make_client)
    desired = adopt_ids(previous, make_client())
    desired.scopes = "player-api player-admin"

    plan = plan_update(previous, desired)

    assert plan.attributes_changed
    assert plan.to_payload()["scopes"] == "player-api player-admin"


def test_added_url_and_claim(make_client):
    previous = _reconciled(make_client)
    desired = adopt_ids(previous, make_client(claims=("read", "write")))
    desired.cors_urls.append(ClientUrl(type=UrlType.CORS, value="https://extra"))

    plan = plan_update(previous, desired)

    assert [c.value for c in plan.changes["claims"].to_create] == ["write"]
    assert [u.value for u in plan.changes["cors_urls"].to_create] == ["https://extra"]
    assert plan.changes["claims"].to_delete == []
    assert Claim(value="write", client_id=7) in plan.client.claims


def test_plan_account_create(make_account):
    plan = plan_account_create(make_account(properties={"team": "blue"}))

    assert plan.is_create
    assert plan.role_changed
    assert [p.key for p in plan.property_writes] == ["team"]


def test_plan_account_update(make_account):
    previous = Account(
        id=5,
        global_id="g-5",
        username="player@example.com",
        role="Member",
        enabled=True,
        properties=[Property(id=20, account_id=5, key="team", value="blue")],
    )
    desired = make_account(role="Administrator", enabled=False, properties={"team": "red"})

    plan = plan_account_update(previous, desired)

    assert plan.account.id == 5
    assert plan.account.global_id == "g-5"
    assert plan.role_changed
    assert plan.state_change is AccountState.DISABLED
    assert [(p.id, p.account_id, p.value) for p in plan.property_writes] == [(20, 5, "red")]
    assert plan.account.properties[0].id == 20


def test_plan_account_update_without_changes(make_account):
    previous = Account(id=5, username="player@example.com", role="Member", enabled=True)

    plan = plan_account_update(previous, make_account())

    assert not plan.has_changes


def test_plan_account_update_rejects_removed_property(make_account):
    previous = Account(
        id=5,
        username="player@example.com",
        properties=[Property(id=20, key="team", value="blue")],
    )
    with pytest.raises(ValidationError):
        plan_account_update(previous, make_account())


def test_planning_sorts_a_copy_of_the_declaration(make_client):
    desired = make_client(claims=("write", "read"))

    plan = plan_create(desired)

    assert [c.value for c in plan.changes["claims"].to_create] == ["read", "write"]
    assert [c.value for c in desired.claims] == ["write", "read"]

from app.core.role_matrix import (
    Capability,
    Role,
    capabilities_for,
    has_capability,
    normalize_roles,
)
from app.models.actor import ActorContext
from app.models.user import UserProfile


def test_normalize_roles_accepts_hyphenated_and_drops_unknown() -> None:
    roles = normalize_roles(["editor-in-chief", " Admin ", "", None, "wizard", "managing_editor"])
    assert roles == frozenset({Role.EDITOR_IN_CHIEF, Role.ADMIN, Role.MANAGING_EDITOR})


def test_admin_holds_every_capability() -> None:
    assert capabilities_for([Role.ADMIN]) == frozenset(Capability)


def test_author_can_only_submit() -> None:
    assert capabilities_for(["author"]) == frozenset({Capability.SUBMIT_MANUSCRIPT})
    assert has_capability(["author"], Capability.RECORD_DECISION) is False


def test_reviewer_cannot_assign_or_decide() -> None:
    assert has_capability(["reviewer"], Capability.REVIEW_MANUSCRIPT) is True
    assert has_capability(["reviewer"], Capability.ASSIGN_REVIEWER) is False
    assert has_capability(["reviewer"], Capability.RECORD_DECISION) is False


def test_editorial_assistant_screens_but_does_not_decide() -> None:
    assert has_capability(["editorial-assistant"], Capability.TECHNICAL_CHECK) is True
    assert has_capability(["editorial-assistant"], Capability.ASSIGN_EDITOR) is True
    assert has_capability(["editorial-assistant"], Capability.RECORD_DECISION) is False


def test_only_senior_roles_publish_issues() -> None:
    assert has_capability(["editor"], Capability.PUBLISH_ISSUE) is False
    assert has_capability(["managing-editor"], Capability.PUBLISH_ISSUE) is True
    assert has_capability(["editor_in_chief"], Capability.PUBLISH_ISSUE) is True


def test_capabilities_union_across_roles() -> None:
    caps = capabilities_for(["author", "reviewer"])
    assert Capability.SUBMIT_MANUSCRIPT in caps
    assert Capability.REVIEW_MANUSCRIPT in caps


def test_actor_and_profile_normalize_roles() -> None:
    actor = ActorContext(user_id="u1", roles=["Editor", "unknown"])
    assert actor.roles == frozenset({Role.EDITOR})
    assert actor.can(Capability.RECORD_DECISION)

    profile = UserProfile(id="u2", roles=["editorial-assistant", "reviewer"])
    assert profile.has_role(Role.EDITORIAL_ASSISTANT)
    assert profile.can(Capability.DECLARE_CONFLICTS)

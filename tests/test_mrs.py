from datetime import datetime, timezone

import pytest

from lab.db.database import Database
from lab.db.models import (
    DatabaseError,
    MergeRequest,
    MRFilter,
    NotFoundError,
    Reviewer,
)


@pytest.fixture
def db(tmp_path):
    database = Database.open(tmp_path)
    yield database
    database.close()


def insert_test_repo(db):
    return db.add_repo("/test/repo", "https://gitlab.com/test/repo", "test-repo")


def base_mr(repo_id, iid):
    return MergeRequest(
        repo_id=repo_id,
        iid=iid,
        title="Test MR",
        author="alice",
        state="opened",
        source_branch="feature/x",
        target_branch="main",
        web_url="https://gitlab.com/test/repo/-/merge_requests/1",
        updated_at=datetime.now(timezone.utc).replace(microsecond=0),
    )


def test_upsert_mr(db):
    repo = insert_test_repo(db)
    mr = base_mr(repo.id, 1)
    first_id = db.upsert_mr(mr)
    assert mr.id == first_id
    assert mr.id > 0

    mr.title = "Updated Title"
    assert db.upsert_mr(mr) == first_id

    got = db.get_mr(mr.id)
    assert got.title == "Updated Title"


def test_upsert_mr_round_trips_fields(db):
    repo = insert_test_repo(db)
    mr = base_mr(repo.id, 7)
    mr.pipeline_status = "success"
    mr.draft = True
    mr.approved = True
    db.upsert_mr(mr)

    got = db.get_mr(mr.id)
    assert got.iid == 7
    assert got.pipeline_status == "success"
    assert got.draft is True
    assert got.approved is True
    assert got.updated_at == mr.updated_at
    assert got.source_branch == "feature/x"


def test_get_mr_missing(db):
    with pytest.raises(NotFoundError):
        db.get_mr(12345)


def test_upsert_mr_labels(db):
    repo = insert_test_repo(db)
    mr = base_mr(repo.id, 1)
    db.upsert_mr(mr)

    db.set_mr_labels(mr.id, ["bug", "enhancement"])
    assert db.get_mr_labels(mr.id) == ["bug", "enhancement"]

    db.set_mr_labels(mr.id, ["wip"])
    assert db.get_mr_labels(mr.id) == ["wip"]


def test_set_mr_labels_failure_rolls_back(db):
    repo = insert_test_repo(db)
    mr = base_mr(repo.id, 1)
    db.upsert_mr(mr)
    db.set_mr_labels(mr.id, ["keep"])

    with pytest.raises(DatabaseError):
        db.set_mr_labels(mr.id, ["dup", "dup"])
    assert db.get_mr_labels(mr.id) == ["keep"]


def test_list_mrs_filter_by_repo(db):
    repo1 = insert_test_repo(db)
    repo2 = db.add_repo("/test/repo2", "https://gitlab.com/test/repo2", "repo2")
    db.upsert_mr(base_mr(repo1.id, 1))
    db.upsert_mr(base_mr(repo2.id, 1))

    mrs = db.list_mrs(MRFilter(repo_id=repo1.id))
    assert [m.repo_id for m in mrs] == [repo1.id]


def test_list_mrs_without_filter_returns_all(db):
    repo = insert_test_repo(db)
    db.upsert_mr(base_mr(repo.id, 1))
    db.upsert_mr(base_mr(repo.id, 2))
    assert sorted(m.iid for m in db.list_mrs()) == [1, 2]


def test_list_mrs_filter_by_author(db):
    repo = insert_test_repo(db)
    mr1 = base_mr(repo.id, 1)
    mr1.author = "alice"
    mr2 = base_mr(repo.id, 2)
    mr2.author = "bob"
    db.upsert_mr(mr1)
    db.upsert_mr(mr2)

    mrs = db.list_mrs(MRFilter(author="alice"))
    assert [m.author for m in mrs] == ["alice"]

    negated = db.list_mrs(MRFilter(author="alice", author_negate=True))
    assert [m.author for m in negated] == ["bob"]


def test_list_mrs_filter_by_labels(db):
    repo = insert_test_repo(db)
    mr1 = base_mr(repo.id, 1)
    mr2 = base_mr(repo.id, 2)
    db.upsert_mr(mr1)
    db.upsert_mr(mr2)
    db.set_mr_labels(mr1.id, ["bug", "urgent"])
    db.set_mr_labels(mr2.id, ["feature"])

    mrs = db.list_mrs(MRFilter(labels=["bug"]))
    assert [m.id for m in mrs] == [mr1.id]

    both = db.list_mrs(MRFilter(labels=["bug", "urgent"]))
    assert [m.id for m in both] == [mr1.id]


def test_list_mrs_filter_by_draft_and_approved(db):
    repo = insert_test_repo(db)
    draft = base_mr(repo.id, 1)
    draft.draft = True
    approved = base_mr(repo.id, 2)
    approved.approved = True
    db.upsert_mr(draft)
    db.upsert_mr(approved)

    assert [m.iid for m in db.list_mrs(MRFilter(draft=True))] == [1]
    assert [m.iid for m in db.list_mrs(MRFilter(draft=False))] == [2]
    assert [m.iid for m in db.list_mrs(MRFilter(approved=True))] == [2]
    assert [m.iid for m in db.list_mrs(MRFilter(approved=False))] == [1]


def test_list_mrs_filter_by_reviewer(db):
    repo = insert_test_repo(db)
    mr1 = base_mr(repo.id, 1)
    mr2 = base_mr(repo.id, 2)
    mr3 = base_mr(repo.id, 3)
    for mr in (mr1, mr2, mr3):
        db.upsert_mr(mr)
    db.set_mr_reviewers(mr1.id, [Reviewer(username="alice")])
    db.set_mr_reviewers(mr2.id, [Reviewer(username="bob")])

    mrs = db.list_mrs(MRFilter(reviewer="alice"))
    assert [m.id for m in mrs] == [mr1.id]

    unassigned = db.list_mrs(MRFilter(reviewer=""))
    assert [m.id for m in unassigned] == [mr3.id]

    assert db.all_reviewers() == ["alice", "bob"]


def test_all_labels(db):
    repo = insert_test_repo(db)
    mr1 = base_mr(repo.id, 1)
    mr2 = base_mr(repo.id, 2)
    db.upsert_mr(mr1)
    db.upsert_mr(mr2)
    db.set_mr_labels(mr1.id, ["bug", "urgent"])
    db.set_mr_labels(mr2.id, ["bug", "feature"])

    assert db.all_labels() == ["bug", "feature", "urgent"]


def test_all_authors(db):
    repo = insert_test_repo(db)
    for iid, author in [(1, "carol"), (2, "alice"), (3, "carol")]:
        mr = base_mr(repo.id, iid)
        mr.author = author
        db.upsert_mr(mr)
    assert db.all_authors() == ["alice", "carol"]


def test_delete_stale_mrs(db):
    repo = insert_test_repo(db)
    for iid in (1, 2, 3):
        db.upsert_mr(base_mr(repo.id, iid))

    db.delete_stale_mrs(repo.id, [1, 3])

    mrs = db.list_mrs(MRFilter(repo_id=repo.id))
    assert sorted(m.iid for m in mrs) == [1, 3]


def test_delete_stale_mrs_empty_keep_deletes_all(db):
    repo = insert_test_repo(db)
    db.upsert_mr(base_mr(repo.id, 1))
    db.upsert_mr(base_mr(repo.id, 2))

    db.delete_stale_mrs(repo.id, [])
    assert db.list_mrs(MRFilter(repo_id=repo.id)) == []
import re
import unittest

from gitsum.errors import AmbiguousRefError, InvalidRelativeExpressionError, RefNotFoundError
from gitsum.vcs.ref_resolver import RefKind, RefResolver, RepoRef

C1 = "1" * 40
C2 = "2" * 40
C3 = "3" * 40
AB_COMMIT = "ab12" + "c" * 36
AB_BLOB = "ab12" + "d" * 36
BLOB = "b" * 40


class DummyGitClient:
    """In-memory stand-in for GitClient with a tiny first-parent history."""

    def __init__(self, branches=None, remotes=None, tags=None, commits=(), blobs=(), parents=None, head=None):
        self.branches = branches or {}
        self.remotes = remotes or {}
        self.tags = tags or {}
        self.commits = set(commits)
        self.blobs = set(blobs)
        self.parents = parents or {}
        self.head = head

    def hash_length(self):
        return 40

    def ref_exists(self, refname):
        for prefix, refs in (("refs/heads/", self.branches), ("refs/remotes/", self.remotes), ("refs/tags/", self.tags)):
            if refname.startswith(prefix) and refname[len(prefix):] in refs:
                return True
        return False

    def _target(self, rev):
        for prefix, refs in (("refs/heads/", self.branches), ("refs/remotes/", self.remotes), ("refs/tags/", self.tags)):
            if rev.startswith(prefix):
                return refs.get(rev[len(prefix):])
        if rev == "HEAD":
            return self.head
        return rev

    def rev_parse_commit(self, revision):
        match = re.match(r"^(?P<base>[^~^]+)(?P<suffix>.*)$", revision)
        sha = self._target(match.group("base"))
        for op, num in re.findall(r"([~^])(\d*)", match.group("suffix")):
            steps = int(num) if num else 1
            if op == "^" and steps > 1:
                return None
            for _ in range(steps):
                sha = self.parents.get(sha)
        if sha in self.commits:
            return sha
        return None

    def object_exists(self, name):
        return name in self.commits or name in self.blobs

    def disambiguate(self, prefix):
        return sorted(obj for obj in self.commits | self.blobs if obj.startswith(prefix))


def linear_repo(**kwargs):
    return DummyGitClient(
        branches={"main": C3, "feature": C2},
        commits=[C1, C2, C3],
        parents={C3: C2, C2: C1},
        head=C3,
        **kwargs,
    )


class TestReservedLiterals(unittest.TestCase):
    def test_staged_requires_permission(self) -> None:
        resolver = RefResolver(linear_repo())
        self.assertEqual(resolver.resolve(":staged", allow_staged=True), RepoRef.staged())
        with self.assertRaises(RefNotFoundError):
            resolver.resolve(":staged")

    def test_worktree_literal(self) -> None:
        ref = RefResolver(linear_repo()).resolve(":worktree")
        self.assertIs(ref.kind, RefKind.WORKING_TREE)
        self.assertIsNone(ref.resolved_id)

    def test_empty_and_option_like_queries(self) -> None:
        resolver = RefResolver(linear_repo())
        for query in ("", "   ", "-n", "--all"):
            with self.assertRaises(RefNotFoundError):
                resolver.resolve(query)


class TestNamedRefs(unittest.TestCase):
    def test_local_branch(self) -> None:
        ref = RefResolver(linear_repo()).resolve("feature")
        self.assertEqual(ref, RepoRef(RefKind.COMMIT, C2, "feature"))

    def test_remote_branch(self) -> None:
        git = linear_repo(remotes={"origin/main": C1})
        self.assertEqual(RefResolver(git).resolve("origin/main").resolved_id, C1)

    def test_branch_wins_over_tag_of_same_name(self) -> None:
        git = linear_repo(tags={"feature": C1})
        self.assertEqual(RefResolver(git).resolve("feature").resolved_id, C2)

    def test_tag(self) -> None:
        git = linear_repo(tags={"v1.0": C1})
        self.assertEqual(RefResolver(git).resolve("v1.0").resolved_id, C1)

    def test_tag_on_blob_is_not_a_commit(self) -> None:
        git = linear_repo(tags={"data": BLOB}, blobs=[BLOB])
        with self.assertRaises(RefNotFoundError) as ctx:
            RefResolver(git).resolve("data")
        self.assertIn("does not point at a commit", str(ctx.exception))

    def test_hex_looking_branch_wins_over_short_hash(self) -> None:
        git = linear_repo()
        git.commits.add(AB_COMMIT)
        git.branches["ab12"] = C1
        self.assertEqual(RefResolver(git).resolve("ab12").resolved_id, C1)

    def test_unknown_name(self) -> None:
        with self.assertRaises(RefNotFoundError) as ctx:
            RefResolver(linear_repo()).resolve("does-not-exist")
        self.assertEqual(ctx.exception.query, "does-not-exist")


class TestHashes(unittest.TestCase):
    def test_full_hash(self) -> None:
        ref = RefResolver(linear_repo()).resolve(C1)
        self.assertEqual(ref.resolved_id, C1)
        self.assertIs(ref.kind, RefKind.COMMIT)

    def test_full_hash_is_case_insensitive(self) -> None:
        git = linear_repo()
        git.commits.add(AB_COMMIT)
        self.assertEqual(RefResolver(git).resolve(AB_COMMIT.upper()).resolved_id, AB_COMMIT)

    def test_full_hash_of_blob(self) -> None:
        git = linear_repo(blobs=[BLOB])
        with self.assertRaises(RefNotFoundError) as ctx:
            RefResolver(git).resolve(BLOB)
        self.assertIn("not a commit", str(ctx.exception))

    def test_unknown_full_hash(self) -> None:
        with self.assertRaises(RefNotFoundError):
            RefResolver(linear_repo()).resolve("f" * 40)

    def test_unique_short_hash(self) -> None:
        self.assertEqual(RefResolver(linear_repo()).resolve("2222").resolved_id, C2)

    def test_ambiguous_short_hash_lists_candidates(self) -> None:
        git = linear_repo(blobs=[AB_BLOB])
        git.commits.add(AB_COMMIT)
        with self.assertRaises(AmbiguousRefError) as ctx:
            RefResolver(git).resolve("ab12")
        self.assertEqual(ctx.exception.candidates, [AB_COMMIT, AB_BLOB])

    def test_short_hash_too_short(self) -> None:
        with self.assertRaises(RefNotFoundError):
            RefResolver(linear_repo()).resolve("222")

    def test_short_hash_of_blob(self) -> None:
        git = linear_repo(blobs=[BLOB])
        with self.assertRaises(RefNotFoundError):
            RefResolver(git).resolve("bbbbbb")


class TestRelativeExpressions(unittest.TestCase):
    def test_head_alone(self) -> None:
        self.assertEqual(RefResolver(linear_repo()).resolve("HEAD").resolved_id, C3)
        self.assertEqual(RefResolver(linear_repo()).resolve("@").resolved_id, C3)

    def test_head_tilde_one_is_parent(self) -> None:
        ref = RefResolver(linear_repo()).resolve("HEAD~1")
        self.assertEqual(ref.resolved_id, C2)
        self.assertEqual(ref.label, "HEAD~1")

    def test_branch_with_caret(self) -> None:
        self.assertEqual(RefResolver(linear_repo()).resolve("main^").resolved_id, C2)
        self.assertEqual(RefResolver(linear_repo()).resolve("main~2").resolved_id, C1)

    def test_walk_past_root(self) -> None:
        with self.assertRaises(InvalidRelativeExpressionError) as ctx:
            RefResolver(linear_repo()).resolve("HEAD~3")
        self.assertIn("beginning of history", str(ctx.exception))

    def test_unparseable_suffix(self) -> None:
        with self.assertRaises(InvalidRelativeExpressionError):
            RefResolver(linear_repo()).resolve("HEAD~x")

    def test_unknown_base(self) -> None:
        with self.assertRaises(RefNotFoundError):
            RefResolver(linear_repo()).resolve("nope~1")

    def test_head_without_commits(self) -> None:
        with self.assertRaises(InvalidRelativeExpressionError):
            RefResolver(DummyGitClient()).resolve("HEAD")

    def test_resolution_is_deterministic(self) -> None:
        resolver = RefResolver(linear_repo())
        self.assertEqual(resolver.resolve("HEAD~1"), resolver.resolve("HEAD~1"))


class TestRepoRefDisplay(unittest.TestCase):
    def test_str(self) -> None:
        self.assertEqual(str(RepoRef(RefKind.COMMIT, C2, "feature")), "feature (2222222)")
        self.assertEqual(str(RepoRef(RefKind.COMMIT, C2, C2)), "2222222")
        self.assertEqual(str(RepoRef.staged()), ":staged")


if __name__ == "__main__":
    unittest.main()

"""Tests for canonical JSON hashing."""

import copy

from investigator.evidence.hashing import canonical_json, canonicalize, hash_object, sha256_hex

SAMPLE = {
    "incidentId": "inc-1",
    "sources": ["METRICS", "LOGS"],
    "artifacts": [
        {"artifactId": "metrics_summary:v1:a", "payload": {"p95": 300, "rps": 130.5}},
        {"artifactId": "logs_summary:v1:a", "payload": {"groups": [{"count": 12}]}},
    ],
    "createdBy": None,
    "flag": True,
}


class TestCanonicalJson:
    def test_keys_sorted_recursively(self):
        assert canonical_json({"b": 1, "a": {"d": 2, "c": 3}}) == '{"a":{"c":3,"d":2},"b":1}'

    def test_list_order_preserved(self):
        assert canonical_json([3, 1, 2]) == "[3,1,2]"

    def test_integral_floats_match_ints(self):
        assert canonical_json({"x": 1.0}) == canonical_json({"x": 1})
        assert canonicalize(2.5) == 2.5

    def test_unicode_not_escaped(self):
        assert canonical_json({"msg": "café"}) == '{"msg":"café"}'


class TestHashObject:
    def test_key_reordering_does_not_change_hash(self):
        reordered = {k: SAMPLE[k] for k in reversed(list(SAMPLE))}
        reordered["artifacts"] = [
            {"payload": dict(reversed(list(a["payload"].items()))), "artifactId": a["artifactId"]}
            for a in SAMPLE["artifacts"]
        ]
        assert hash_object(reordered) == hash_object(SAMPLE)

    def test_hash_is_sha256_of_canonical_json(self):
        assert hash_object(SAMPLE) == sha256_hex(canonical_json(SAMPLE))
        assert len(hash_object(SAMPLE)) == 64

    def test_targeted_mutations_change_hash(self):
        base = hash_object(SAMPLE)
        mutations = [
            lambda v: v.__setitem__("incidentId", "inc-2"),
            lambda v: v["sources"].reverse(),
            lambda v: v["artifacts"][0]["payload"].__setitem__("p95", 301),
            lambda v: v["artifacts"][1]["payload"]["groups"][0].__setitem__("count", 13),
            lambda v: v.__setitem__("createdBy", "alice"),
            lambda v: v.__setitem__("flag", False),
            lambda v: v["artifacts"].pop(),
        ]
        for mutate in mutations:
            changed = copy.deepcopy(SAMPLE)
            mutate(changed)
            assert hash_object(changed) != base

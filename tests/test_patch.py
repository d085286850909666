import copy

import jsonpatch

from cert_injection_webhook.patch import diff, make_patch


def apply(before, ops):
	return jsonpatch.JsonPatch(ops).apply(copy.deepcopy(before))


def test_identical_documents_produce_no_ops():
	doc = {"a": [1, {"b": "c"}], "d": None}
	assert diff(doc, copy.deepcopy(doc)) == []


def test_mapping_add_remove_replace():
	before = {"keep": 1, "drop": 2, "change": "x"}
	after = {"keep": 1, "change": "y", "new": [1]}
	ops = diff(before, after)
	assert {"op": "remove", "path": "/drop"} in ops
	assert {"op": "replace", "path": "/change", "value": "y"} in ops
	assert {"op": "add", "path": "/new", "value": [1]} in ops
	assert apply(before, ops) == after


def test_list_append_uses_positional_adds():
	before = {"env": [{"name": "A"}]}
	after = {"env": [{"name": "A"}, {"name": "B"}, {"name": "C"}]}
	assert diff(before, after) == [
		{"op": "add", "path": "/env/1", "value": {"name": "B"}},
		{"op": "add", "path": "/env/2", "value": {"name": "C"}},
	]


def test_list_truncation_removes_from_the_end():
	before = [1, 2, 3]
	after = [1]
	ops = diff(before, after)
	assert ops == [{"op": "remove", "path": "/2"}, {"op": "remove", "path": "/1"}]
	assert apply(before, ops) == after


def test_prepend_never_emits_move():
	before = {"initContainers": [{"name": "first", "image": "a"}, {"name": "second", "image": "b"}]}
	after = {
		"initContainers": [
			{"name": "injected", "image": "x", "env": []},
			{"name": "first", "image": "a"},
			{"name": "second", "image": "b"},
		]
	}
	ops = diff(before, after)
	assert {op["op"] for op in ops} <= {"add", "remove", "replace"}
	assert apply(before, ops) == after


def test_scalar_type_change_is_replaced():
	ops = diff({"x": 1}, {"x": True})
	assert ops == [{"op": "replace", "path": "/x", "value": True}]


def test_container_type_change_is_replaced():
	ops = diff({"env": None}, {"env": [{"name": "A"}]})
	assert ops == [{"op": "replace", "path": "/env", "value": [{"name": "A"}]}]


def test_pointer_escaping():
	before = {"nodeSelector": {}}
	after = {"nodeSelector": {"kubernetes.io/os": "linux", "a~b": "c"}}
	ops = diff(before, after)
	paths = {op["path"] for op in ops}
	assert paths == {"/nodeSelector/kubernetes.io~1os", "/nodeSelector/a~0b"}
	assert apply(before, ops) == after


def test_make_patch_returns_jsonpatch():
	before = {"spec": {"volumes": []}}
	after = {"spec": {"volumes": [{"name": "ca-certs", "emptyDir": {}}]}}
	patch = make_patch(before, after)
	assert isinstance(patch, jsonpatch.JsonPatch)
	assert patch.apply(before) == after

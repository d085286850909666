import copy
import logging

from cert_injection_webhook import mutation
from cert_injection_webhook.config import Settings
from cert_injection_webhook.matcher import parse_rules

CA_CERT = "-----BEGIN CERTIFICATE-----\n-----END CERTIFICATE-----"
CA_CERT_CANONICAL = CA_CERT + "\n"
MOUNT = {"name": "ca-certs", "mountPath": "/etc/ssl/certs", "readOnly": True}


def make_settings(**kwargs) -> Settings:
	defaults = dict(app_env="test", label_rules=parse_rules(["some/label"]))
	defaults.update(kwargs)
	return Settings(**defaults)


def make_pod():
	return {
		"metadata": {"name": "p1", "labels": {"some/label": "x"}},
		"spec": {
			"initContainers": [{"name": "init", "image": "image"}],
			"containers": [
				{"name": "c1", "image": "image", "env": None},
				{"name": "c2", "image": "image", "env": [{"name": "EXISTING", "value": "VALUE"}]},
			],
		},
	}


def test_plan_leaves_original_untouched():
	pod = make_pod()
	snapshot = copy.deepcopy(pod)
	settings = make_settings(env_vars=(("HTTP_PROXY", "http://p"),), ca_certs_data=CA_CERT)
	after = mutation.plan(pod, settings)
	assert pod == snapshot
	assert after != pod


def test_env_vars_appended_in_order_to_every_container():
	settings = make_settings(env_vars=(("HTTP_PROXY", "http://p"), ("NO_PROXY", "local")))
	after = mutation.plan(make_pod(), settings)
	injected = [{"name": "HTTP_PROXY", "value": "http://p"}, {"name": "NO_PROXY", "value": "local"}]
	assert after["spec"]["initContainers"][0]["env"] == injected
	assert after["spec"]["containers"][0]["env"] == injected
	assert after["spec"]["containers"][1]["env"] == [{"name": "EXISTING", "value": "VALUE"}] + injected
	assert "volumes" not in after["spec"]


def test_env_vars_are_not_deduplicated():
	settings = make_settings(env_vars=(("HTTP_PROXY", "http://p"),))
	twice = mutation.plan(mutation.plan(make_pod(), settings), settings)
	assert [e["name"] for e in twice["spec"]["containers"][0]["env"]] == ["HTTP_PROXY", "HTTP_PROXY"]


def test_no_ca_data_means_no_ca_injection():
	after = mutation.plan(make_pod(), make_settings(setup_ca_certs_image="img"))
	assert after == make_pod()


def test_ca_injection():
	settings = make_settings(ca_certs_data=CA_CERT, setup_ca_certs_image="some-ca-certs-image")
	after = mutation.plan(make_pod(), settings)
	spec = after["spec"]

	assert spec["volumes"] == [{"name": "ca-certs", "emptyDir": {}}]
	assert [c["name"] for c in spec["initContainers"]] == ["setup-ca-certs", "init"]
	assert spec["initContainers"][1]["volumeMounts"] == [MOUNT]
	assert all(c["volumeMounts"] == [MOUNT] for c in spec["containers"])
	assert "imagePullSecrets" not in spec

	setup = spec["initContainers"][0]
	assert setup["image"] == "some-ca-certs-image"
	assert setup["env"] == [{"name": "CA_CERTS_DATA_0", "value": CA_CERT_CANONICAL}]
	assert setup["imagePullPolicy"] == "IfNotPresent"
	assert setup["workingDir"] == "/workspace"
	assert setup["volumeMounts"] == [{"name": "ca-certs", "mountPath": "/workspace"}]
	assert setup["securityContext"] == {
		"runAsNonRoot": True,
		"allowPrivilegeEscalation": False,
		"privileged": False,
		"seccompProfile": {"type": "RuntimeDefault"},
		"capabilities": {"drop": ["ALL"]},
	}
	assert "resources" not in setup


def test_one_env_var_per_certificate():
	bundle = "garbage\n" + CA_CERT + "\n" + CA_CERT.replace("CERTIFICATE", "TRUSTED CERTIFICATE")
	setup = mutation.setup_ca_certs_container(make_settings(ca_certs_data=bundle))
	assert [e["name"] for e in setup["env"]] == ["CA_CERTS_DATA_0", "CA_CERTS_DATA_1"]


def test_system_registry_secret_is_appended():
	pod = make_pod()
	pod["spec"]["imagePullSecrets"] = [{"name": "app-secret"}]
	settings = make_settings(ca_certs_data=CA_CERT, system_registry_secret="system-secret")
	after = mutation.plan(pod, settings)
	assert after["spec"]["imagePullSecrets"] == [{"name": "app-secret"}, {"name": "system-secret"}]


def test_resource_overrides(caplog):
	settings = make_settings(
		ca_certs_data=CA_CERT,
		init_container_cpu_request=" 100m ",
		init_container_memory_request="lots",
		init_container_memory_limit="128Mi",
	)
	with caplog.at_level(logging.WARNING, logger="cert-injection-webhook"):
		setup = mutation.setup_ca_certs_container(settings)
	assert setup["resources"] == {
		"requests": {"cpu": "100m"},
		"limits": {"memory": "128Mi"},
	}
	assert "lots" in caplog.text


def test_all_resource_overrides_invalid_leaves_resources_out():
	settings = make_settings(ca_certs_data=CA_CERT, init_container_cpu_limit="fast")
	assert "resources" not in mutation.setup_ca_certs_container(settings)


def test_null_spec_is_treated_as_empty():
	pod = {"metadata": {"name": "p1", "labels": {"some/label": "x"}}, "spec": None}
	settings = make_settings(env_vars=(("HTTP_PROXY", "http://p"),), ca_certs_data=CA_CERT)
	after = mutation.plan(pod, settings)
	assert after["spec"]["volumes"] == [{"name": "ca-certs", "emptyDir": {}}]
	assert [c["name"] for c in after["spec"]["initContainers"]] == ["setup-ca-certs"]
	assert pod["spec"] is None

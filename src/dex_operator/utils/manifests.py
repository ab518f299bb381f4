"""
Manifest builders for the children of a DexServer.

Each builder is a pure function of the server and the fixed
``ServerDefaults``; calling it twice yields identical manifests. Built-in
kinds are assembled from the typed Kubernetes client models and serialized
to API form, while the OpenShift Route is written as a plain dictionary.
"""

import re
from typing import Any
from urllib.parse import urlparse

import yaml
from kubernetes import client

from dex_operator.constants import (
    APP_LABEL_KEY,
    CLIENT_SECRET_KEY,
    DEX_BINARY,
    DEX_CONFIG_DIR,
    DEX_CONFIG_KEY,
    DEX_MTLS_DIR,
    DEX_TLS_DIR,
    DEXCONFIG_NAME_LABEL_KEY,
    DEXCONFIG_NAMESPACE_LABEL_KEY,
    KIND_ROUTE,
    LDAP_BIND_PW_KEY,
    MTLS_CA_KEY,
    OPERATOR_LABEL_KEY,
    OPERATOR_LABEL_VALUE,
    ROUTE_GROUP,
    ROUTE_VERSION,
    SERVING_CERT_ANNOTATION,
)
from dex_operator.models import ConnectorType, DexServer
from dex_operator.models.server import ConnectorSpec
from dex_operator.settings import ServerDefaults

_serializer: client.ApiClient | None = None


def _serialize(obj: Any) -> dict[str, Any]:
    """Convert a typed Kubernetes model to its API dictionary form."""
    global _serializer
    if _serializer is None:
        _serializer = client.ApiClient()
    return _serializer.sanitize_for_serialization(obj)


def _compact(value: Any) -> Any:
    """Drop empty strings, None and empty containers from nested config."""
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            item = _compact(item)
            if item is None or item == "" or item == [] or item == {}:
                continue
            result[key] = item
        return result
    if isinstance(value, list):
        return [_compact(item) for item in value]
    return value


def labels_for_server(server: DexServer) -> dict[str, str]:
    """Labels identifying the workload of a DexServer."""
    return {
        APP_LABEL_KEY: server.metadata.name,
        DEXCONFIG_NAME_LABEL_KEY: server.metadata.name,
        DEXCONFIG_NAMESPACE_LABEL_KEY: server.metadata.namespace,
    }


def _child_labels(server: DexServer) -> dict[str, str]:
    return {
        APP_LABEL_KEY: server.metadata.name,
        OPERATOR_LABEL_KEY: OPERATOR_LABEL_VALUE,
    }


def connector_env_name(connector_id: str, suffix: str) -> str:
    """
    Environment variable carrying a connector secret into the Dex pod.

    >>> connector_env_name("corp-ldap", "BIND_PW")
    'DEX_CONNECTOR_CORP_LDAP_BIND_PW'
    """
    normalized = re.sub(r"[^A-Za-z0-9]", "_", connector_id).upper()
    return f"DEX_CONNECTOR_{normalized}_{suffix}"


def issuer_host(issuer: str) -> str | None:
    """Return the host part of the issuer URL, if any."""
    if not issuer:
        return None
    return urlparse(issuer).hostname or None


# Dex configuration


def _github_config(connector: ConnectorSpec) -> dict[str, Any]:
    github = connector.github
    if github is None:
        return {}
    config: dict[str, Any] = {
        "clientID": github.client_id,
        "redirectURI": github.redirect_uri,
        "org": github.org,
    }
    if github.client_secret_ref.name:
        config["clientSecret"] = "$" + connector_env_name(connector.id, "CLIENT_SECRET")
    return config


def _ldap_config(connector: ConnectorSpec) -> dict[str, Any]:
    ldap = connector.ldap
    if ldap is None:
        return {}
    config: dict[str, Any] = {
        "host": ldap.host,
        "insecureNoSSL": ldap.insecure_no_ssl,
        "insecureSkipVerify": ldap.insecure_skip_verify,
        "startTLS": ldap.start_tls,
        "rootCA": ldap.root_ca,
        "rootCAData": ldap.root_ca_data,
        "bindDN": ldap.bind_dn,
        "usernamePrompt": ldap.username_prompt,
        "userSearch": ldap.user_search.model_dump(by_alias=True),
        "groupSearch": ldap.group_search.model_dump(by_alias=True),
    }
    if ldap.bind_pw_ref.name:
        config["bindPW"] = "$" + connector_env_name(connector.id, "BIND_PW")
    return config


def render_dex_config(server: DexServer, defaults: ServerDefaults) -> str:
    """
    Render the Dex ``config.yaml`` for a server.

    Listener, TLS and storage settings fall back to the in-cluster layout
    (serving certificate under ``/etc/dex/tls``, client CA from the mTLS
    secret mount). Connector secrets are emitted as ``$ENV`` references and
    never inlined.
    """
    spec = server.spec

    storage: dict[str, Any] = {"type": spec.storage.type}
    if spec.storage.type == "kubernetes":
        storage["config"] = {"inCluster": True}

    web = {
        "http": spec.web.http,
        "https": spec.web.https or f"0.0.0.0:{defaults.http_port}",
        "tlsCert": spec.web.tls_cert or f"{DEX_TLS_DIR}/tls.crt",
        "tlsKey": spec.web.tls_key or f"{DEX_TLS_DIR}/tls.key",
    }

    grpc = {
        "addr": spec.grpc.addr or f"0.0.0.0:{defaults.grpc_port}",
        "tlsCert": spec.grpc.tls_cert or f"{DEX_TLS_DIR}/tls.crt",
        "tlsKey": spec.grpc.tls_key or f"{DEX_TLS_DIR}/tls.key",
        "tlsClientCA": spec.grpc.tls_client_ca or f"{DEX_MTLS_DIR}/{MTLS_CA_KEY}",
        "reflection": True,
    }

    connectors = []
    for connector in spec.connectors:
        if connector.type == ConnectorType.GITHUB:
            config = _github_config(connector)
        else:
            config = _ldap_config(connector)
        connectors.append(
            {
                "type": connector.type.value,
                "id": connector.id,
                "name": connector.name or connector.id,
                "config": config,
            }
        )

    document = {
        "issuer": spec.issuer,
        "storage": storage,
        "web": web,
        "grpc": grpc,
        "expiry": {"deviceRequests": spec.expiry.device_requests},
        "logger": spec.logger.model_dump(),
        "oauth2": spec.oauth2.model_dump(by_alias=True),
        "enablePasswordDB": spec.enable_password_db,
        "staticPasswords": [
            p.model_dump(by_alias=True) for p in spec.static_passwords
        ],
        "connectors": connectors,
    }

    return yaml.safe_dump(_compact(document), sort_keys=False, default_flow_style=False)


def _connector_secret_env(server: DexServer) -> list[client.V1EnvVar]:
    env = []
    for connector in server.spec.connectors:
        if connector.type == ConnectorType.GITHUB and connector.github:
            ref, suffix, key = (
                connector.github.client_secret_ref,
                "CLIENT_SECRET",
                CLIENT_SECRET_KEY,
            )
        elif connector.type == ConnectorType.LDAP and connector.ldap:
            ref, suffix, key = connector.ldap.bind_pw_ref, "BIND_PW", LDAP_BIND_PW_KEY
        else:
            continue
        if not ref.name:
            continue
        env.append(
            client.V1EnvVar(
                name=connector_env_name(connector.id, suffix),
                value_from=client.V1EnvVarSource(
                    secret_key_ref=client.V1SecretKeySelector(name=ref.name, key=key)
                ),
            )
        )
    return env


# Child manifests


def build_config_map(server: DexServer, defaults: ServerDefaults) -> dict[str, Any]:
    """Config bundle holding the rendered Dex configuration."""
    config_map = client.V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=client.V1ObjectMeta(
            name=server.metadata.name,
            namespace=server.metadata.namespace,
            labels=_child_labels(server),
        ),
        data={DEX_CONFIG_KEY: render_dex_config(server, defaults)},
    )
    return _serialize(config_map)


def build_service(server: DexServer, defaults: ServerDefaults) -> dict[str, Any]:
    """ClusterIP service fronting the Dex web and gRPC listeners."""
    name = server.metadata.name
    service = client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=server.metadata.namespace,
            labels=_child_labels(server),
            annotations={SERVING_CERT_ANNOTATION: defaults.tls_secret_for(name)},
        ),
        spec=client.V1ServiceSpec(
            type="ClusterIP",
            selector={APP_LABEL_KEY: name},
            ports=[
                client.V1ServicePort(
                    name="http", port=defaults.http_port, protocol="TCP"
                ),
                client.V1ServicePort(
                    name="grpc", port=defaults.grpc_port, protocol="TCP"
                ),
            ],
        ),
    )
    return _serialize(service)


def build_service_account(
    server: DexServer, defaults: ServerDefaults
) -> dict[str, Any]:
    """Identity the Dex pods run as."""
    service_account = client.V1ServiceAccount(
        api_version="v1",
        kind="ServiceAccount",
        metadata=client.V1ObjectMeta(
            name=defaults.service_account_for(server.metadata.name),
            namespace=server.metadata.namespace,
            labels=_child_labels(server),
        ),
    )
    return _serialize(service_account)


def build_deployment(server: DexServer, defaults: ServerDefaults) -> dict[str, Any]:
    """Single-replica Dex deployment serving the rendered configuration."""
    name = server.metadata.name
    namespace = server.metadata.namespace
    labels = labels_for_server(server)

    env = [client.V1EnvVar(name="KUBERNETES_POD_NAMESPACE", value=namespace)]
    env.extend(_connector_secret_env(server))

    container = client.V1Container(
        name=name,
        image=defaults.image,
        image_pull_policy=defaults.image_pull_policy,
        command=[DEX_BINARY, "serve", f"{DEX_CONFIG_DIR}/{DEX_CONFIG_KEY}"],
        env=env,
        ports=[
            client.V1ContainerPort(name="https", container_port=defaults.http_port),
            client.V1ContainerPort(name="grpc", container_port=defaults.grpc_port),
        ],
        volume_mounts=[
            client.V1VolumeMount(name="config", mount_path=DEX_CONFIG_DIR),
            client.V1VolumeMount(name="tls", mount_path=DEX_TLS_DIR),
            client.V1VolumeMount(name="mtls", mount_path=DEX_MTLS_DIR),
        ],
    )

    volumes = [
        client.V1Volume(
            name="config",
            config_map=client.V1ConfigMapVolumeSource(
                name=name,
                items=[client.V1KeyToPath(key=DEX_CONFIG_KEY, path=DEX_CONFIG_KEY)],
            ),
        ),
        client.V1Volume(
            name="tls",
            secret=client.V1SecretVolumeSource(
                secret_name=defaults.tls_secret_for(name)
            ),
        ),
        client.V1Volume(
            name="mtls",
            secret=client.V1SecretVolumeSource(
                secret_name=defaults.mtls_secret_name, optional=True
            ),
        ),
    ]

    deployment = client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
        spec=client.V1DeploymentSpec(
            replicas=1,
            selector=client.V1LabelSelector(match_labels=labels),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(
                    service_account_name=defaults.service_account_for(name),
                    containers=[container],
                    volumes=volumes,
                ),
            ),
        ),
    )
    return _serialize(deployment)


def build_route(server: DexServer, defaults: ServerDefaults) -> dict[str, Any]:
    """OpenShift route passing TLS through to the Dex web listener."""
    name = server.metadata.name
    spec: dict[str, Any] = {
        "tls": {"termination": "passthrough"},
        "to": {"kind": "Service", "name": name},
        "port": {"targetPort": "http"},
        "wildcardPolicy": "None",
    }
    host = issuer_host(server.spec.issuer)
    if host:
        spec["host"] = host

    return {
        "apiVersion": f"{ROUTE_GROUP}/{ROUTE_VERSION}",
        "kind": KIND_ROUTE,
        "metadata": {
            "name": name,
            "namespace": server.metadata.namespace,
            "labels": labels_for_server(server),
        },
        "spec": spec,
    }


def build_ingress(server: DexServer, defaults: ServerDefaults) -> dict[str, Any]:
    """Ingress alternative to the route for clusters without OpenShift."""
    name = server.metadata.name
    host = issuer_host(server.spec.issuer)

    ingress = client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=server.metadata.namespace,
            labels=labels_for_server(server),
            annotations={
                "nginx.ingress.kubernetes.io/backend-protocol": "HTTPS",
                "nginx.ingress.kubernetes.io/ssl-passthrough": "true",
            },
        ),
        spec=client.V1IngressSpec(
            ingress_class_name=defaults.ingress_class_name,
            rules=[
                client.V1IngressRule(
                    host=host,
                    http=client.V1HTTPIngressRuleValue(
                        paths=[
                            client.V1HTTPIngressPath(
                                path="/",
                                path_type="Prefix",
                                backend=client.V1IngressBackend(
                                    service=client.V1IngressServiceBackend(
                                        name=name,
                                        port=client.V1ServiceBackendPort(name="http"),
                                    )
                                ),
                            )
                        ]
                    ),
                )
            ],
        ),
    )
    return _serialize(ingress)

"""
AirTek production topology.

Container registry and images, a VPC, an EKS cluster with its node security
group, and the web app / web API workloads behind an nginx ingress. Values
flow between resources as cells: the cluster takes the VPC's subnet ids,
the deployments take the image URIs and the namespace name, the ingress
takes the web app service's name and port.

Stack configuration keys: minClusterSize, maxClusterSize,
desiredClusterSize, eksNodeInstanceType, vpcNetworkCidr.
"""

from __future__ import annotations

import ipaddress
import json
from typing import Any, Mapping

from infragraph.config.stack import StackConfig
from infragraph.core.errors import PermanentProviderError
from infragraph.engine.context import RunContext
from infragraph.engine.descriptor import ResourceHandle
from infragraph.providers.memory import InMemoryProvider
from infragraph.providers.registry import ProviderRegistry

TAGS = {"Environment": "Production", "Project": "AirTek"}

NAMESPACE = "airTek-prod"
INGRESS_HOST = "airtek-web-app.com"

DEFAULTS: dict[str, Any] = {
    "minClusterSize": 1,
    "maxClusterSize": 3,
    "desiredClusterSize": 2,
    "eksNodeInstanceType": "t3.medium",
    "vpcNetworkCidr": "10.0.0.0/16",
}


def declare(ctx: RunContext, config: StackConfig) -> dict[str, ResourceHandle]:
    """Declare the AirTek topology on ``ctx`` and return the handles by name."""
    min_size = config.get_int("minClusterSize", DEFAULTS["minClusterSize"])
    max_size = config.get_int("maxClusterSize", DEFAULTS["maxClusterSize"])
    desired_size = config.get_int("desiredClusterSize", DEFAULTS["desiredClusterSize"])
    instance_type = config.get("eksNodeInstanceType", DEFAULTS["eksNodeInstanceType"])
    vpc_cidr = config.get("vpcNetworkCidr", DEFAULTS["vpcNetworkCidr"])

    repo = ctx.declare("airTek-repo", "awsx:ecr:Repository", {"tags": TAGS})

    app_image = ctx.declare(
        "web-app-image",
        "awsx:ecr:Image",
        {"repositoryUrl": repo.url, "path": "./infra-web"},
    )
    api_image = ctx.declare(
        "web-api-image",
        "awsx:ecr:Image",
        {"repositoryUrl": repo.url, "path": "./infra-api"},
    )

    vpc = ctx.declare(
        "airTek-vpc",
        "awsx:ec2:Vpc",
        {
            "enableDnsHostnames": True,
            "cidrBlock": vpc_cidr,
            "tags": TAGS,
            "subnetSpecs": [
                {"type": "Public", "cidrMask": 22},
                {"type": "Private", "cidrMask": 20},
            ],
        },
    )

    security_group = ctx.declare(
        "eks-sg",
        "aws:ec2/securityGroup:SecurityGroup",
        {"description": "Security Group for EKS Cluster", "vpcId": vpc.vpcId},
    )

    cluster = ctx.declare(
        "airTek-cluster",
        "eks:index:Cluster",
        {
            "vpcId": vpc.vpcId,
            "publicSubnetIds": vpc.publicSubnetIds,
            "privateSubnetIds": vpc.privateSubnetIds,
            "instanceType": instance_type,
            "desiredCapacity": desired_size,
            "minSize": min_size,
            "maxSize": max_size,
            "nodeAssociatePublicIpAddress": False,
            "tags": TAGS,
        },
    )

    eks_provider = ctx.declare(
        "eks-provider",
        "pulumi:providers:kubernetes",
        {"kubeconfig": cluster.kubeconfigJson},
    )

    # Resources created through the Kubernetes provider depend on it explicitly
    via_eks = [eks_provider]

    node_security_group = ctx.declare(
        "eks-nsg",
        "eks:index:NodeGroupSecurityGroup",
        {
            "clusterSecurityGroupId": security_group.output("id"),
            "eksClusterName": cluster.eksClusterName,
            "vpcId": vpc.vpcId,
            "tags": TAGS,
        },
        depends_on=via_eks,
    )

    namespace = ctx.declare(
        "airTek-namespace",
        "kubernetes:core/v1:Namespace",
        {"metadata": {"name": NAMESPACE}},
        depends_on=via_eks,
    )
    namespace_name = namespace.metadata.map(lambda meta: meta["name"])

    nginx_ingress = ctx.declare(
        "nginx-ingress",
        "kubernetes:helm.sh/v3:Chart",
        {
            "chart": "nginx-ingress",
            "version": "4.0.0",
            "namespace": "ingress-controller",
            "fetchOpts": {"repo": "https://charts.helm.sh/stable"},
        },
        depends_on=via_eks,
    )

    app_deployment = ctx.declare(
        "web-app",
        "kubernetes:apps/v1:Deployment",
        _deployment_inputs("web-app", namespace_name, app_image.imageUri),
        depends_on=via_eks,
    )
    api_deployment = ctx.declare(
        "web-api",
        "kubernetes:apps/v1:Deployment",
        _deployment_inputs("web-api", namespace_name, api_image.imageUri),
        depends_on=via_eks,
    )

    app_service = ctx.declare(
        "web-app-service",
        "kubernetes:core/v1:Service",
        _service_inputs("web-app", namespace_name),
        depends_on=via_eks,
    )
    api_service = ctx.declare(
        "web-api-service",
        "kubernetes:core/v1:Service",
        _service_inputs("web-api", namespace_name),
        depends_on=via_eks,
    )

    ingress = ctx.declare(
        "web-app-ingress",
        "kubernetes:networking.k8s.io/v1:Ingress",
        {
            "metadata": {
                "namespace": namespace_name,
                "annotations": {"nginx.ingress.kubernetes.io/rewrite-target": "/"},
            },
            "spec": {
                "rules": [
                    {
                        "host": INGRESS_HOST,
                        "http": {
                            "paths": [
                                {
                                    "path": "/",
                                    "backend": {
                                        "serviceName": app_service.metadata.map(
                                            lambda meta: meta["name"]
                                        ),
                                        "servicePort": app_service.spec.map(
                                            lambda spec: spec["ports"][0]["port"]
                                        ),
                                    },
                                }
                            ]
                        },
                    }
                ]
            },
        },
        depends_on=via_eks,
    )

    ctx.export("repositoryName", repo.url)
    # Exported once the cluster exists, under its declared name
    ctx.export("clusterName", cluster.outputs.map(lambda _: cluster.id.name))

    return {
        "repo": repo,
        "app_image": app_image,
        "api_image": api_image,
        "vpc": vpc,
        "security_group": security_group,
        "cluster": cluster,
        "eks_provider": eks_provider,
        "node_security_group": node_security_group,
        "namespace": namespace,
        "nginx_ingress": nginx_ingress,
        "app_deployment": app_deployment,
        "api_deployment": api_deployment,
        "app_service": app_service,
        "api_service": api_service,
        "ingress": ingress,
    }


def _deployment_inputs(app: str, namespace: Any, image: Any) -> dict[str, Any]:
    labels = {"app": app}
    return {
        "metadata": {"namespace": namespace, "labels": labels},
        "spec": {
            "replicas": 3,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "containers": [
                        {
                            "name": f"{app}-container",
                            "image": image,
                            "ports": [{"name": "http", "containerPort": 80}],
                        }
                    ]
                },
            },
        },
    }


def _service_inputs(app: str, namespace: Any) -> dict[str, Any]:
    return {
        "metadata": {"namespace": namespace, "labels": {"app": app}},
        "spec": {
            "ports": [{"port": 80, "targetPort": "http"}],
            "selector": {"app": app},
        },
    }


# === Simulated provider ===


def _repository(inputs: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "url": "123456789012.dkr.ecr.us-east-1.amazonaws.com/airtek-repo",
        "tags": dict(inputs.get("tags", {})),
    }


def _image(inputs: Mapping[str, Any]) -> dict[str, Any]:
    name = str(inputs["path"]).rstrip("/").rsplit("/", 1)[-1]
    return {"imageUri": f"{inputs['repositoryUrl']}:{name}-latest"}


def _vpc(inputs: Mapping[str, Any]) -> dict[str, Any]:
    network = ipaddress.ip_network(inputs["cidrBlock"])
    public: list[str] = []
    private: list[str] = []
    for spec in inputs.get("subnetSpecs", []):
        subnet = next(network.subnets(new_prefix=spec["cidrMask"]))
        target = public if spec["type"] == "Public" else private
        target.append(f"subnet-{spec['type'].lower()}-{subnet.network_address}")
    if not public or not private:
        raise PermanentProviderError("VPC needs both public and private subnet specs")
    return {
        "vpcId": "vpc-0a1b2c3d",
        "cidrBlock": str(network),
        "publicSubnetIds": public,
        "privateSubnetIds": private,
    }


def _security_group(inputs: Mapping[str, Any]) -> dict[str, Any]:
    return {"id": "sg-0eks", "vpcId": inputs["vpcId"]}


def _cluster(inputs: Mapping[str, Any]) -> dict[str, Any]:
    if not inputs["minSize"] <= inputs["desiredCapacity"] <= inputs["maxSize"]:
        raise PermanentProviderError(
            "desiredCapacity must lie between minSize and maxSize",
            details={
                "min": inputs["minSize"],
                "desired": inputs["desiredCapacity"],
                "max": inputs["maxSize"],
            },
        )
    name = "airtek-cluster-eksCluster"
    kubeconfig = {
        "apiVersion": "v1",
        "clusters": [{"name": name, "cluster": {"server": f"https://{name}.eks.amazonaws.com"}}],
        "current-context": name,
    }
    return {
        "eksClusterName": name,
        "kubeconfigJson": json.dumps(kubeconfig),
        "nodeCount": inputs["desiredCapacity"],
    }


def _kubernetes_object(inputs: Mapping[str, Any]) -> dict[str, Any]:
    return {"metadata": dict(inputs.get("metadata", {})), "spec": dict(inputs.get("spec", {}))}


def _service(inputs: Mapping[str, Any]) -> dict[str, Any]:
    metadata = dict(inputs["metadata"])
    metadata.setdefault("name", f"{metadata['labels']['app']}-service")
    return {"metadata": metadata, "spec": dict(inputs["spec"])}


def simulated_provider(latency: float = 0.0) -> InMemoryProvider:
    """In-memory provider producing plausible outputs for every AirTek kind."""
    return (
        InMemoryProvider(latency=latency)
        .on("awsx:ecr:Repository", _repository)
        .on("awsx:ecr:Image", _image)
        .on("awsx:ec2:Vpc", _vpc)
        .on("aws:ec2/securityGroup:SecurityGroup", _security_group)
        .on("eks:index:Cluster", _cluster)
        .on("pulumi:providers:kubernetes", lambda inputs: {"ready": True})
        .on("eks:index:NodeGroupSecurityGroup", lambda inputs: {"id": "sg-0nodes"})
        .on("kubernetes:core/v1:Namespace", _kubernetes_object)
        .on("kubernetes:helm.sh/v3:Chart", lambda inputs: {"ready": True})
        .on("kubernetes:apps/v1:Deployment", _kubernetes_object)
        .on("kubernetes:core/v1:Service", _service)
        .on("kubernetes:networking.k8s.io/v1:Ingress", _kubernetes_object)
    )


def simulated_registry(provider: InMemoryProvider | None = None) -> ProviderRegistry:
    """Registry serving every AirTek kind from one simulated provider."""
    registry = ProviderRegistry()
    adapter = provider or simulated_provider()
    for package in ("awsx", "aws", "eks", "pulumi", "kubernetes"):
        registry.register(package, adapter, description="simulated")
    return registry

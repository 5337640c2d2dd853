"""Tests for Terraform, Kubernetes and Docker Compose extraction."""

from pathlib import Path

import pytest

from reposcope.infra_extractor import (
    InfraExtractor,
    InfraFormat,
    coerce_hcl_value,
    detect_format,
    parse_hcl_attributes,
    terraform_references,
)


@pytest.fixture
def extractor() -> InfraExtractor:
    return InfraExtractor()


class TestFormatDetection:
    """Classification by file name, directory and content."""

    def test_by_name(self):
        assert detect_format("infra/main.tf") is InfraFormat.TERRAFORM
        assert detect_format("docker-compose.yml") is InfraFormat.DOCKER_COMPOSE
        assert detect_format("docker-compose.prod.yaml") is InfraFormat.DOCKER_COMPOSE
        assert detect_format("compose.yaml") is InfraFormat.DOCKER_COMPOSE
        assert detect_format("k8s/app.yaml") is InfraFormat.KUBERNETES
        assert detect_format("config/settings.yaml") is None
        assert detect_format("README.md") is None

    def test_by_content(self):
        manifest = "apiVersion: v1\nkind: ConfigMap\n"
        assert detect_format("anything.yaml", manifest) is InfraFormat.KUBERNETES
        assert detect_format("k8s/values.yaml", "replicas: 2\n") is None


class TestHclHelpers:
    """Attribute and reference scanning inside Terraform blocks."""

    def test_coerce_values(self):
        assert coerce_hcl_value('"text"') == "text"
        assert coerce_hcl_value("true") is True
        assert coerce_hcl_value("false") is False
        assert coerce_hcl_value("3") == 3
        assert coerce_hcl_value("0.5") == 0.5
        assert coerce_hcl_value("var.region") == "var.region"
        assert coerce_hcl_value('"a" ? "b" : "c"') == '"a" ? "b" : "c"'

    def test_parse_attributes(self):
        body = (
            '  ami           = "ami-123" # pinned\n'
            "  count         = 2\n"
            "  enabled       = true\n"
            "  tags = {\n"
            '    Name = "web"\n'
            "  }\n"
            "  ingress {\n"
            "    from_port = 80\n"
            "  }\n"
            "  subnet_ids = [aws_subnet.a.id, aws_subnet.b.id]\n"
        )
        attrs = parse_hcl_attributes(body)

        assert attrs["ami"] == "ami-123"
        assert attrs["count"] == 2
        assert attrs["enabled"] is True
        assert attrs["tags"] == '{ Name = "web" }'
        assert attrs["subnet_ids"] == "[aws_subnet.a.id, aws_subnet.b.id]"
        assert "from_port" not in attrs

    def test_references(self):
        body = (
            "ami = var.ami\n"
            "subnet_id = aws_subnet.main.id\n"
            "depends_on = [aws_iam_role.r]\n"
            'name = "${local.prefix}-web"\n'
            'description = "not.a_reference"\n'
        )
        assert terraform_references(body) == ["aws_subnet.main", "aws_iam_role.r"]


class TestSampleRepository:
    """Every manifest in the sample repository."""

    @pytest.fixture
    def analysis(self, extractor, sample_repo_path: Path):
        return extractor.analyze_repository(sample_repo_path)

    def test_find_infra_files(self, extractor, sample_repo_path: Path):
        found = extractor.find_infra_files(sample_repo_path)

        assert [p.name for p in found[InfraFormat.TERRAFORM]] == ["main.tf"]
        assert [p.name for p in found[InfraFormat.KUBERNETES]] == ["deployment.yaml"]
        assert [p.name for p in found[InfraFormat.DOCKER_COMPOSE]] == ["docker-compose.yml"]

    def test_terraform(self, analysis):
        provider, bucket, policy, module = analysis.by_format("terraform")

        assert (provider.kind, provider.name, provider.line) == ("provider", "aws", 1)
        assert provider.attributes == {"region": "us-east-1"}
        assert bucket.resource_type == "aws_s3_bucket"
        assert bucket.line == 5
        assert bucket.attributes == {"bucket": "sample-uploads", "provider": "aws"}
        assert policy.resource_type == "aws_s3_bucket_policy"
        assert policy.dependencies == ["aws_s3_bucket.uploads"]

        assert (module.kind, module.resource_type, module.name) == ("module", "module", "network")
        assert module.dependencies == ["./modules/network"]
        assert analysis.terraform_modules == ["network"]

    def test_kubernetes(self, analysis):
        deployment, service = analysis.by_format("kubernetes")

        assert (deployment.resource_type, deployment.name, deployment.line) == ("Deployment", "api", 1)
        assert deployment.attributes["namespace"] == "shop"
        assert deployment.dependencies == ["ConfigMap/api-config"]
        assert (service.resource_type, service.line) == ("Service", 17)
        assert analysis.k8s_deployments == ["api"]
        assert analysis.k8s_services == ["api"]

    def test_compose(self, analysis):
        compose = {r.name: r for r in analysis.by_format("docker-compose")}

        assert compose["api"].dependencies == ["db"]
        assert compose["api"].line == 2
        assert compose["api"].attributes["ports"] == ["3000:3000"]
        assert compose["db"].attributes["image"] == "postgres:16"
        assert compose["db-data"].kind == "volume"
        assert compose["db-data"].line == 13
        assert analysis.compose_services == ["api", "db"]
        assert analysis.compose_volumes == ["db-data"]
        assert len(analysis.compose_files) == 1

    def test_summary(self, analysis):
        summary = analysis.summary()

        assert summary["terraform"] == {"resource_count": 2, "provider_count": 1, "module_count": 1}
        assert summary["kubernetes"]["resource_count"] == 2
        assert summary["docker"]["service_count"] == 2


class TestEdgeCases:
    """Malformed and unusual manifests."""

    def test_unterminated_terraform_block(self, extractor):
        content = 'resource "aws_instance" "web" {\n  ami = "x"\n'
        assert extractor.extract("main.tf", content) == []

    def test_braces_inside_strings(self, extractor):
        content = 'resource "null_resource" "x" {\n  cmd = "echo }"\n}\n'
        resource = extractor.extract("main.tf", content)[0]
        assert resource.attributes["cmd"] == "echo }"

    def test_kubernetes_list_and_invalid_document(self, extractor):
        content = (
            "apiVersion: v1\n"
            "kind: List\n"
            "items:\n"
            "  - apiVersion: v1\n"
            "    kind: Secret\n"
            "    metadata:\n"
            "      name: creds\n"
            "---\n"
            "apiVersion: v1\n"
            "kind: [unclosed\n"
        )
        resources = extractor.extract("manifests.yaml", content)

        assert [(r.resource_type, r.name) for r in resources] == [("Secret", "creds")]

    def test_compose_depends_on_mapping(self, extractor):
        content = (
            "services:\n"
            "  web:\n"
            "    depends_on:\n"
            "      cache:\n"
            "        condition: service_started\n"
            "  cache:\n"
            "    image: redis\n"
        )
        web = extractor.extract("compose.yaml", content)[0]
        assert web.dependencies == ["cache"]

    def test_unknown_file(self, extractor):
        assert extractor.extract("notes.txt", "hello") == []

    def test_compose_sections_with_the_wrong_shape(self, extractor):
        content = (
            "services:\n"
            "  - web\n"
            "  - db\n"
            "volumes:\n"
            "  - data\n"
            "networks:\n"
            "  back: {}\n"
        )
        resources = extractor.extract("docker-compose.yml", content)

        assert [(r.kind, r.name) for r in resources] == [("network", "back")]

    def test_compose_scalar_depends_on(self, extractor):
        content = "services:\n  web:\n    depends_on: db\n"
        assert extractor.extract("compose.yaml", content)[0].dependencies == ["db"]

    def test_kubernetes_scalar_metadata(self, extractor):
        content = "apiVersion: v1\nkind: ConfigMap\nmetadata: oops\n"
        resource = extractor.extract("k8s/cm.yaml", content)[0]

        assert (resource.resource_type, resource.name) == ("ConfigMap", "unnamed")
        assert resource.attributes == {"api_version": "v1"}

    def test_invalid_manifest_is_reported_not_raised(self, extractor, temp_dir: Path):
        (temp_dir / "docker-compose.yml").write_text("services: [unclosed\n")
        (temp_dir / "compose.yaml").write_text("services:\n  api:\n    image: app\n")

        analysis = extractor.analyze_repository(temp_dir)

        assert analysis.compose_services == ["api"]
        assert list(analysis.failed_files) == [str(temp_dir / "docker-compose.yml")]
        assert "Error" in analysis.failed_files[str(temp_dir / "docker-compose.yml")]

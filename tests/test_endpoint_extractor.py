"""Tests for HTTP endpoint extraction."""

import pytest

from reposcope.endpoint_extractor import (
    FRAMEWORK_PATTERNS,
    EndpointExtractor,
    Framework,
    detect_framework,
    extract_route_params,
    is_api_file,
    join_route,
    normalize_method,
)
from reposcope.models import FunctionDefinition, ParsedFile


@pytest.fixture
def extractor() -> EndpointExtractor:
    return EndpointExtractor()


def _single(endpoints):
    assert len(endpoints) == 1, endpoints
    return endpoints[0]


def test_every_framework_has_patterns():
    for framework in Framework:
        if framework is Framework.UNKNOWN:
            continue
        assert FRAMEWORK_PATTERNS[framework], framework


class TestHelpers:
    """Route parameters, joining and method normalization."""

    def test_colon_params(self):
        params = extract_route_params("/users/:id/posts/:postId?")
        assert [p.name for p in params] == ["id", "postId"]
        assert params[0].required
        assert not params[1].required

    def test_brace_params(self):
        params = extract_route_params("/items/{item_id:int}/{rest...}")
        assert [(p.name, p.type) for p in params] == [("item_id", "int"), ("rest", None)]

    def test_angle_params(self):
        params = extract_route_params("/files/<path:rest>/<name>")
        assert [(p.name, p.type) for p in params] == [("rest", "path"), ("name", None)]

    def test_no_params(self):
        assert extract_route_params("/health") == []

    def test_port_is_not_a_param(self):
        params = extract_route_params("http://host:8080/users/:id")
        assert [p.name for p in params] == ["id"]

    def test_join_route(self):
        assert join_route("users", ":id") == "/users/:id"
        assert join_route("/api/", "/users") == "/api/users"
        assert join_route("", "") == "/"

    def test_is_api_file(self):
        assert is_api_file("src/users/users.controller.ts")
        assert is_api_file("app/router.py")
        assert not is_api_file("src/utils/date.ts")

    def test_normalize_method(self):
        assert normalize_method("get") == "GET"
        assert normalize_method("'post'") == "POST"
        assert normalize_method("all") == "ANY"
        assert normalize_method("*") == "ANY"
        assert normalize_method("fetch") is None


class TestFrameworkDetection:
    """Framework detection from imports and file type."""

    @pytest.mark.parametrize("content,path,expected", [
        ("import express from 'express';", "a.ts", Framework.EXPRESS),
        ("const fastify = require('fastify')();", "a.js", Framework.FASTIFY),
        ("const Router = require('@koa/router');", "a.js", Framework.KOA),
        ("const Hapi = require('@hapi/hapi');", "a.js", Framework.HAPI),
        ("import { Controller } from '@nestjs/common';", "a.ts", Framework.NESTJS),
        ("from flask import Flask", "a.py", Framework.FLASK),
        ("from fastapi import APIRouter", "a.py", Framework.FASTAPI),
        ("from django.urls import path", "a.py", Framework.DJANGO),
        ('import "github.com/gin-gonic/gin"', "a.go", Framework.GIN),
        ('import "net/http"', "a.go", Framework.GO_HTTP),
        ("import org.springframework.web.bind.annotation.*;", "A.java", Framework.SPRING),
        ("use actix_web::{get, App};", "main.rs", Framework.ACTIX),
        ("const x = 1;", "a.ts", Framework.UNKNOWN),
    ])
    def test_detect(self, content, path, expected):
        assert detect_framework(content, path) is expected


class TestJavaScriptFrameworks:
    """Express, Fastify, Koa, Hapi and NestJS routes."""

    def test_express(self, extractor):
        content = "import express from 'express';\nconst app = express();\napp.get('/health', health);\n"
        endpoint = _single(extractor.extract("server.ts", content))

        assert endpoint.method == "GET"
        assert endpoint.path == "/health"
        assert endpoint.handler == "health"
        assert endpoint.framework == "express"
        assert endpoint.line == 3

    def test_fastify(self, extractor):
        content = "import Fastify from 'fastify';\nconst app = Fastify();\napp.post('/items', createItem);\n"
        endpoint = _single(extractor.extract("server.ts", content))

        assert (endpoint.method, endpoint.path, endpoint.handler) == ("POST", "/items", "createItem")
        assert endpoint.framework == "fastify"

    def test_koa(self, extractor):
        content = (
            "const Router = require('@koa/router');\n"
            "const router = new Router();\n"
            "router.put('/items/:id', updateItem);\n"
        )
        endpoint = _single(extractor.extract("routes.js", content))

        assert (endpoint.method, endpoint.path, endpoint.handler) == ("PUT", "/items/:id", "updateItem")
        assert endpoint.framework == "koa"
        assert [p.name for p in endpoint.path_params] == ["id"]

    def test_hapi(self, extractor):
        content = (
            "const Hapi = require('@hapi/hapi');\n"
            "server.route({ method: 'DELETE', path: '/items/{id}', handler: removeItem });\n"
        )
        endpoint = _single(extractor.extract("server.js", content))

        assert (endpoint.method, endpoint.path) == ("DELETE", "/items/{id}")
        assert endpoint.framework == "hapi"
        assert endpoint.handler is None

    def test_nestjs_controller_prefix(self, extractor):
        content = (
            "import { Controller, Get } from '@nestjs/common';\n"
            "\n"
            "@Controller('users')\n"
            "export class UsersController {\n"
            "  @Get(':id')\n"
            "  findOne() {}\n"
            "}\n"
        )
        endpoint = _single(extractor.extract("users.controller.ts", content))

        assert (endpoint.method, endpoint.path) == ("GET", "/users/:id")
        assert endpoint.handler == "findOne"
        assert endpoint.framework == "nestjs"

    def test_non_route_calls_are_ignored(self, extractor):
        content = "import express from 'express';\nconst v = cache.get('user:1', loader);\n"
        assert extractor.extract("cache.ts", content) == []

    def test_duplicate_routes_are_merged(self, extractor):
        content = (
            "import express from 'express';\n"
            "app.get('/x', first);\n"
            "app.get('/x', second);\n"
            "app.post('/x', third);\n"
        )
        endpoints = extractor.extract("app.ts", content)

        assert [e.key for e in endpoints] == ["GET:/x", "POST:/x"]
        assert endpoints[0].handler == "first"

    def test_unknown_framework_uses_source_language_patterns(self, extractor):
        endpoint = _single(extractor.extract("routes.ts", "router.get('/a', handler);\n"))
        assert endpoint.framework == "express"


class TestPythonFrameworks:
    """Flask, FastAPI and Django routes."""

    def test_flask_route_with_converter(self, extractor):
        content = (
            "from flask import Flask\n"
            "app = Flask(__name__)\n"
            "\n"
            '@app.route("/users/<int:user_id>")\n'
            "def get_user(user_id):\n"
            "    return {}\n"
        )
        endpoint = _single(extractor.extract("app.py", content))

        assert (endpoint.method, endpoint.path, endpoint.handler) == ("GET", "/users/<int:user_id>", "get_user")
        assert [(p.name, p.type) for p in endpoint.path_params] == [("user_id", "int")]

    def test_flask_methods_list(self, extractor):
        content = (
            "from flask import Flask\n"
            '@app.route("/login", methods=["GET", "POST"])\n'
            "def login():\n"
            "    pass\n"
        )
        endpoints = extractor.extract("app.py", content)

        assert sorted(e.method for e in endpoints) == ["GET", "POST"]
        assert all(e.handler == "login" for e in endpoints)

    def test_fastapi(self, extractor):
        content = (
            "from fastapi import FastAPI\n"
            "app = FastAPI()\n"
            "\n"
            '@app.get("/items/{item_id}")\n'
            "async def read_item(item_id: int):\n"
            "    return {}\n"
        )
        endpoint = _single(extractor.extract("main.py", content))

        assert (endpoint.method, endpoint.path, endpoint.handler) == ("GET", "/items/{item_id}", "read_item")
        assert endpoint.framework == "fastapi"
        assert endpoint.line == 4

    def test_django_urlpatterns(self, extractor):
        content = (
            "from django.urls import path\n"
            "from . import views\n"
            "\n"
            "urlpatterns = [\n"
            '    path("articles/<int:year>/", views.year_archive),\n'
            "]\n"
        )
        endpoint = _single(extractor.extract("urls.py", content))

        assert endpoint.method == "ANY"
        assert endpoint.path == "articles/<int:year>/"
        assert endpoint.handler == "views.year_archive"
        assert endpoint.framework == "django"


class TestOtherLanguages:
    """Gin, net/http, Spring and Actix routes."""

    def test_gin(self, extractor):
        content = (
            "package main\n\n"
            'import "github.com/gin-gonic/gin"\n\n'
            "func main() {\n"
            "\tr := gin.Default()\n"
            '\tr.GET("/ping", ping)\n'
            "}\n"
        )
        endpoint = _single(extractor.extract("main.go", content))

        assert (endpoint.method, endpoint.path, endpoint.handler) == ("GET", "/ping", "ping")
        assert endpoint.framework == "gin"

    def test_go_net_http(self, extractor):
        content = (
            'import "net/http"\n\n'
            'http.HandleFunc("/hello", hello)\n'
            'http.HandleFunc("GET /users/{id}", getUser)\n'
        )
        endpoints = extractor.extract("main.go", content)

        assert [(e.method, e.path, e.handler) for e in endpoints] == [
            ("ANY", "/hello", "hello"),
            ("GET", "/users/{id}", "getUser"),
        ]

    def test_spring_class_prefix(self, extractor):
        content = (
            "import org.springframework.web.bind.annotation.*;\n"
            "\n"
            "@RestController\n"
            '@RequestMapping("/api")\n'
            "public class UserController {\n"
            '    @GetMapping("/users")\n'
            "    public List<User> list() {\n"
            "        return users;\n"
            "    }\n"
            "}\n"
        )
        endpoint = _single(extractor.extract("UserController.java", content))

        assert (endpoint.method, endpoint.path, endpoint.handler) == ("GET", "/api/users", "list")
        assert endpoint.framework == "spring"

    def test_actix(self, extractor):
        content = (
            "use actix_web::{get, App, HttpServer, Responder};\n"
            "\n"
            '#[get("/health")]\n'
            "async fn health() -> impl Responder {\n"
            '    "ok"\n'
            "}\n"
        )
        endpoint = _single(extractor.extract("main.rs", content))

        assert (endpoint.method, endpoint.path, endpoint.handler) == ("GET", "/health", "health")
        assert endpoint.framework == "actix"


class TestSyntaxTreeStrategy:
    """Decorated functions from the parser take precedence over regex hits."""

    def test_tree_handler_wins(self, extractor):
        content = (
            "from fastapi import FastAPI\n"
            "app = FastAPI()\n"
            "\n"
            '@app.get("/items/{item_id}")\n'
            "async def read_item(item_id: int):\n"
            "    return {}\n"
        )
        parsed = ParsedFile(
            language="python",
            file_path="main.py",
            content_hash="x",
            functions=[FunctionDefinition(
                name="tree_handler", line=4, decorators=['app.get("/items/{item_id}")'],
            )],
        )
        endpoint = _single(extractor.extract("main.py", content, parsed))

        assert endpoint.handler == "tree_handler"
        assert endpoint.key == "GET:/items/{item_id}"

    def test_supports(self, extractor):
        assert extractor.supports("a.ts")
        assert extractor.supports("Main.java")
        assert not extractor.supports("schema.prisma")


def test_anonymous_handler_still_yields_one_endpoint(extractor):
    content = (
        "import express from 'express';\n"
        "app.delete('/sessions/:id', async (req, res) => {\n"
        "  res.sendStatus(204);\n"
        "});\n"
    )
    endpoint = _single(extractor.extract("server.ts", content))

    assert (endpoint.method, endpoint.path) == ("DELETE", "/sessions/:id")

"""Pytest configuration and fixtures for reposcope tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from reposcope.cache import ParseCache
from reposcope.parser import SourceParser


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path_factory, monkeypatch) -> Path:
    """Point the config file at a throwaway directory for every test.

    config_manager imports the paths at module load, so both modules are
    patched.
    """
    base_dir = tmp_path_factory.mktemp("reposcope_home")
    config_file = base_dir / "config.toml"
    monkeypatch.setattr("reposcope.config.BASE_DIR", base_dir)
    monkeypatch.setattr("reposcope.config.CONFIG_FILE", config_file)
    monkeypatch.setattr("reposcope.config_manager.BASE_DIR", base_dir)
    monkeypatch.setattr("reposcope.config_manager.CONFIG_FILE", config_file)
    return config_file


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_repo_path() -> Path:
    """Get path to the sample repository with two features and infra files."""
    return Path(__file__).parent / "fixtures" / "sample_repo"


@pytest.fixture
def cached_parser() -> SourceParser:
    return SourceParser(ParseCache(max_entries=10))


@pytest.fixture
def write_file(temp_dir: Path):
    """Write *content* to ``temp_dir / rel`` and return the path."""

    def _write(rel: str, content: str) -> Path:
        path = temp_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_typescript_code() -> str:
    """TypeScript module touching every construct the parser extracts."""
    return '''import express from 'express';
import { Router as R, Request } from 'express';
import * as path from 'path';
import './polyfills';
import { helper } from './utils';

export interface User {
  id: string;
  email?: string;
}

export enum Role {
  Admin,
  Member,
}

export type UserId = string;

export function getUser(id: UserId): User {
  function inner() {
    return id;
  }
  return { id: inner() };
}

export const createUser = async (email: string) => {
  return helper(email);
};

class BaseService {}

export class UserService extends BaseService implements Service {
  private repo: Repo;
  static count = 0;

  async find(id: string): Promise<User> {
    return this.repo.get(id);
  }

  private helper() {}
}

export default UserService;
'''


@pytest.fixture
def sample_python_code() -> str:
    """Python module with __all__, classes, typed attributes and helpers."""
    return '''"""Sample module for testing."""
import os
import numpy as np
from typing import Optional
from .models import Base, Mixin

__all__ = ["Account", "open_account"]


class Account(Base, Mixin):
    """Bank account."""

    owner: str
    nickname: Optional[str] = None

    def deposit(self, amount: int) -> int:
        return amount

    def _audit(self):
        pass

    def __secret(self):
        pass

    @staticmethod
    def currency() -> str:
        return "EUR"


def open_account(owner: str) -> Account:
    return Account()


def _private_helper():
    return os.getcwd()
'''

# config.py
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")
GITHUB_API_BASE = os.getenv("GITHUB_API_BASE", "https://api.github.com")
GITHUB_TIMEOUT = float(os.getenv("GITHUB_TIMEOUT", "30"))

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "8192"))

WRAP_NAVIGATION = _env_bool("WRAP_NAVIGATION", True)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# local diff reviews skip these basenames unless SKIP_NOISE_FILES is off
SKIP_NOISE_FILES = _env_bool("SKIP_NOISE_FILES", True)
NOISE_FILES = frozenset([
    "pnpm-lock.yaml",
    "pnpm-lock.yml",
    "package-lock.json",
    "npm-shrinkwrap.json",
    "yarn.lock",
    "bun.lock",
    "bun.lockb",
    "Cargo.lock",
    "Gemfile.lock",
    "Pipfile.lock",
    "poetry.lock",
    "uv.lock",
    "pdm.lock",
    "composer.lock",
    "go.sum",
    "Gopkg.lock",
    "mix.lock",
    "pubspec.lock",
    "Podfile.lock",
    "Package.resolved",
    "packages.lock.json",
    "paket.lock",
    "gradle.lockfile",
    "deps.lock",
    "Chart.lock",
    "renv.lock",
    "conan.lock",
    "vcpkg-lock.json",
    "flake.lock",
    ".terraform.lock.hcl",
])


def is_noise_file(path: str) -> bool:
    return os.path.basename(path) in NOISE_FILES

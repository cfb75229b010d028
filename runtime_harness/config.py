"""Configuration management for the runtime test harness."""

import os
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RunnerModel(BaseModel):
    """Base for models that are handed to the test runner with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileEntry(RunnerModel):
    """A single entry of the runner's `files` list."""
    pattern: str
    included: Optional[bool] = None
    nocache: Optional[bool] = None
    watched: Optional[bool] = None


def file_entries(*items: Any) -> List[FileEntry]:
    out = []
    for item in items:
        if isinstance(item, FileEntry):
            out.append(item)
        elif isinstance(item, dict):
            out.append(FileEntry(**item))
        else:
            out.append(FileEntry(pattern=str(item)))
    return out


class TestPaths(BaseModel):
    """Named groups of test file patterns."""
    __test__ = False

    common: List[FileEntry] = Field(default_factory=lambda: file_entries(
        "test/_init_tests.js",
        "test/fixtures/*.html",
        {"pattern": "test/fixtures/served/*.html", "included": False, "nocache": False, "watched": True},
        {"pattern": "dist/**/*.js", "included": False, "nocache": False, "watched": True},
        {"pattern": "examples/**/*", "included": False, "nocache": False, "watched": True},
        {"pattern": "dist.3p/**/*", "included": False, "nocache": False, "watched": True},
    ))
    basic: List[str] = Field(default_factory=lambda: [
        "test/functional/**/*.js",
        "ads/**/test/test-*.js",
        "extensions/**/test/**/*.js",
    ])
    a4a: List[str] = Field(default_factory=lambda: [
        "extensions/amp-a4a/**/test/**/*.js",
        "extensions/amp-ad-network-*/**/test/**/*.js",
        "ads/google/a4a/test/*.js",
    ])
    unit: List[str] = Field(default_factory=lambda: [
        "test/functional/**/*.js",
        "ads/**/test/test-*.js",
        "extensions/**/test/*.js",
    ])
    unit_on_sauce: List[str] = Field(default_factory=lambda: [
        "test/functional/**/*.js",
        "ads/**/test/test-*.js",
    ])
    integration: List[str] = Field(default_factory=lambda: [
        "test/integration/**/*.js",
        "test/functional/test-error.js",
        "extensions/**/test/integration/**/*.js",
    ])
    chai_as_promised: List[str] = Field(default_factory=lambda: ["test/chai-as-promised/chai-as-promised.js"])
    simple_test: List[str] = Field(default_factory=lambda: ["test/simple-test.js"])
    init_tests: str = Field(default="test/_init_tests.js", description="Init file excluded from globbed expansions")

    @property
    def default(self) -> List[FileEntry]:
        return self.common + file_entries(*self.basic)


class MochaOptions(RunnerModel):
    reporter: Optional[str] = "html"
    timeout: Optional[int] = 10000
    grep: Optional[str] = None


class AmpClientConfig(RunnerModel):
    """Runtime block visible in the test browser via window.parent.karma.config.amp."""
    use_compiled_js: bool = False
    saucelabs: bool = False
    ad_types: List[str] = Field(default_factory=list)
    mocha_timeout: Optional[int] = None


class ClientOptions(RunnerModel):
    capture_console: bool = False
    mocha: MochaOptions = Field(default_factory=MochaOptions)
    amp: Optional[AmpClientConfig] = None


class BrowserifyOptions(RunnerModel):
    debug: bool = True
    watch: bool = True
    transform: List[Any] = Field(default_factory=lambda: ["babelify"])


def _sauce_launcher(browser_name: str, platform: str, version: str, **extra: Any) -> Dict[str, Any]:
    launcher = {"base": "SauceLabs", "browserName": browser_name, "platform": platform, "version": version}
    launcher.update(extra)
    return launcher


def _default_custom_launchers() -> Dict[str, Dict[str, Any]]:
    return {
        "Chrome_no_extensions": {"base": "Chrome", "flags": ["--disable-extensions"]},
        "Chrome_no_extensions_headless": {
            "base": "ChromeHeadless",
            "flags": ["--no-sandbox", "--disable-extensions"],
        },
        "SL_Chrome_android": _sauce_launcher("android", "android", "latest", deviceName="Android GoogleAPI Emulator"),
        "SL_Chrome_latest": _sauce_launcher("chrome", "Windows 10", "latest"),
        "SL_Chrome_45": _sauce_launcher("chrome", "linux", "45"),
        "SL_Firefox_latest": _sauce_launcher("firefox", "Windows 10", "latest"),
        "SL_Safari_latest": _sauce_launcher("safari", "OS X 10.12", "latest"),
        "SL_Safari_10": _sauce_launcher("safari", "OS X 10.11", "10"),
        "SL_Safari_9": _sauce_launcher("safari", "OS X 10.11", "9"),
        "SL_iOS_latest": _sauce_launcher("iphone", "ios", "latest"),
        "SL_iOS_10_0": _sauce_launcher("iphone", "ios", "10.0"),
        "SL_iOS_9_1": _sauce_launcher("iphone", "ios", "9.1"),
        "SL_Edge_latest": _sauce_launcher("MicrosoftEdge", "Windows 10", "latest"),
        "SL_IE_11": _sauce_launcher("internet explorer", "Windows 10", "11"),
    }


class RunnerOptions(RunnerModel):
    """Options record handed to the browser test runner."""
    base_path: Optional[str] = None
    frameworks: List[str] = Field(default_factory=lambda: [
        "fixture", "browserify", "mocha", "chai-as-promised", "sinon-chai", "chai",
    ])
    files: List[FileEntry] = Field(default_factory=list)
    preprocessors: Dict[str, List[str]] = Field(default_factory=lambda: {
        "./test/fixtures/*.html": ["html2js"],
        "./test/**/*.js": ["browserify"],
        "./ads/**/test/test-*.js": ["browserify"],
        "./extensions/**/test/**/*.js": ["browserify"],
        "./testing/**/*.js": ["browserify"],
    })
    browserify: BrowserifyOptions = Field(default_factory=BrowserifyOptions)
    reporters: List[str] = Field(default_factory=lambda: ["super-dots", "karmaSimpleReporter"])
    port: int = 9876
    colors: bool = True
    proxies: Dict[str, str] = Field(default_factory=lambda: {
        "/ads/": "/base/ads/",
        "/dist/": "/base/dist/",
        "/dist.3p/": "/base/dist.3p/",
        "/examples/": "/base/examples/",
        "/extensions/": "/base/extensions/",
        "/src/": "/base/src/",
        "/test/": "/base/test/",
    })
    single_run: bool = True
    browsers: List[str] = Field(default_factory=lambda: ["Chrome_no_extensions"])
    custom_launchers: Dict[str, Dict[str, Any]] = Field(default_factory=_default_custom_launchers)
    client: ClientOptions = Field(default_factory=ClientOptions)
    capture_timeout: int = 4 * 60 * 1000
    browser_no_activity_timeout: int = 4 * 60 * 1000
    browser_disconnect_timeout: int = 10000
    browser_disconnect_tolerance: int = 2
    coverage_reporter: Optional[Dict[str, Any]] = None

    def patterns(self) -> List[str]:
        return [entry.pattern for entry in self.files]

    def to_runner_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CannedResponse(BaseModel):
    """A fixed response served by the fake-response server."""
    path: str
    method: str = Field(default="GET")
    status_code: int = Field(default=200)
    json_body: Optional[Any] = Field(default=None, description="JSON payload; takes precedence over body")
    body: str = Field(default="")
    content_type: str = Field(default="text/plain; charset=utf-8")
    headers: Dict[str, str] = Field(default_factory=dict)


class FakeServerConfig(BaseModel):
    """Fake-response server settings."""
    host: str = Field(default="localhost", description="Interface to bind")
    port: int = Field(default=31862, description="Fixed port tests send their requests to")
    root: str = Field(default=".", description="Directory served as static files")
    directory_listing: bool = Field(default=True, description="Render an index for directories")
    startup_timeout: float = Field(default=10.0, description="Seconds to wait for the server to answer")
    canned_responses: List[CannedResponse] = Field(default_factory=list)


class HarnessConfig(BaseModel):
    """Main configuration for the runtime test harness."""

    log_level: str = Field(default="INFO", description="Logging level")

    # Source layout
    ads_directory: str = Field(default="ads", description="Directory scanned for ad network implementations")
    global_configs_directory: str = Field(
        default="build-system/global-configs", description="Directory holding <name>-config.json files"
    )
    runtime_targets: List[str] = Field(
        default_factory=lambda: ["dist/amp.js", "dist/v0.js"], description="Build outputs patched with the runtime config"
    )

    # External commands
    runner_command: List[str] = Field(
        default_factory=lambda: ["node_modules/.bin/karma", "start"], description="Test runner invocation"
    )
    build_command: List[str] = Field(default_factory=lambda: ["gulp", "build"])
    css_command: List[str] = Field(default_factory=lambda: ["gulp", "css"])

    # Remote browser lab
    sauce_browsers: List[str] = Field(default_factory=lambda: [
        # With --saucelabs, integration tests are run on this set of browsers.
        "SL_Chrome_android",
        "SL_Chrome_latest",
        "SL_Chrome_45",
        "SL_Firefox_latest",
        "SL_Safari_latest",
        "SL_Safari_10",
        "SL_Safari_9",
        "SL_iOS_latest",
        "SL_iOS_10_0",
        "SL_iOS_9_1",
        "SL_Edge_latest",
        "SL_IE_11",
    ])
    sauce_lite_browsers: List[str] = Field(default_factory=lambda: [
        # Only browsers that support chai-as-promised.
        "SL_Safari_latest",
    ])

    test_paths: TestPaths = Field(default_factory=TestPaths)
    runner: RunnerOptions = Field(default_factory=RunnerOptions)
    fake_server: FakeServerConfig = Field(default_factory=FakeServerConfig)


def load_config(config_path: Optional[str] = None) -> HarnessConfig:
    """Load configuration from file or environment variables."""
    if config_path is None:
        config_path = os.getenv("RUNTIME_TEST_CONFIG", "config/runtime-test.yaml")

    config_data: Dict[str, Any] = {}

    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ValueError(f"Config YAML must be a mapping: {config_path}")

    log_level = os.getenv("RUNTIME_TEST_LOG_LEVEL") or os.getenv("LOG_LEVEL")
    if log_level:
        config_data["log_level"] = log_level

    port = os.getenv("RUNTIME_TEST_SERVER_PORT")
    if port:
        fake_server = dict(config_data.get("fake_server") or {})
        fake_server["port"] = int(port)
        config_data["fake_server"] = fake_server

    return HarnessConfig(**config_data)

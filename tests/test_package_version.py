from importlib.metadata import PackageNotFoundError, version

import ai_pipeline


def test_version_matches_installed_package_metadata() -> None:
    try:
        installed_version = version("ai-safe-pipeline")
    except PackageNotFoundError:
        assert ai_pipeline.__version__ == "0.0.0"
    else:
        assert ai_pipeline.__version__ == installed_version

"""Turn-taking core: controller, debouncer and error kinds."""

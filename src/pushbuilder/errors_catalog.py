"""Actionable error catalog for pushbuilder."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "usage": {
        "what": "Expected 3 arguments (user, repository, commit), got {count}.",
        "next": "Invoke as `pushbuilder <user> <repo> <sha>` from the git receive hook.",
    },
    "repository_not_found": {
        "what": "Source repository not found: {path}",
        "next": "Check `builder_root` and that the push reached this node.",
    },
    "invalid_commit": {
        "what": "Refusing to build {sha!r}: not a hexadecimal commit id.",
        "next": "Invoke the builder with the full commit sha reported by the receive hook.",
    },
    "commit_unresolvable": {
        "what": "Could not archive commit {sha}.",
        "next": "Make sure the commit exists in {path} and push again.",
    },
    "empty_tree": {
        "what": "Commit {sha} produced an empty file tree.",
        "next": "Push a commit that contains application files.",
    },
    "config_fetch_failed": {
        "what": "Could not fetch build configuration for {app}: {detail}",
        "next": "Check that the controller is reachable and `builder_key` is valid.",
    },
    "buildpack_failed": {
        "what": "Buildpack compilation exited with code {code}.",
        "next": "Review the build output above, fix the application and push again.",
    },
    "image_build_failed": {
        "what": "Docker build of {image} exited with code {code}.",
        "next": "Review the build output above and the Dockerfile, then push again.",
    },
    "push_failed": {
        "what": "Could not push {image} to the registry.",
        "next": "Check that the registry at {registry} is reachable.",
    },
    "release_failed": {
        "what": "Failed to launch container for {app}.",
        "next": "Inspect the controller logs; the image is already in the registry.",
    },
    "missing_settings": {
        "what": "Missing required settings: {keys}",
        "next": "Provide them in the config file or through the matching CLI options.",
    },
}


def actionable_error(key: str, **kwargs) -> str:
    if key not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {key}")

    template = _ERROR_MESSAGES[key]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"

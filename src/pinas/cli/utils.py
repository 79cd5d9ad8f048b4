import json

import click
import yaml


class MutuallyExclusiveOption(click.Option):
    def __init__(self, *args, **kwargs):
        self.mutually_exclusive = set(kwargs.pop("mutually_exclusive", []))
        help = kwargs.get("help", "")
        if self.mutually_exclusive:
            ex_str = ", ".join(self.mutually_exclusive)
            kwargs["help"] = help + f" Cannot be combined with: [{ex_str}]."
        super().__init__(*args, **kwargs)

    def handle_parse_result(self, ctx, opts, args):
        if self.mutually_exclusive.intersection(opts) and self.name in opts:
            raise click.UsageError(
                f"`{self.name}` cannot be combined with `{', '.join(self.mutually_exclusive)}`."
            )
        return super().handle_parse_result(ctx, opts, args)


def load_manifest_file(path: str) -> dict:
    """Read a manifest from a JSON or YAML file."""
    with open(path, "r") as f:
        content = f.read()
    if path.endswith((".yaml", ".yml")):
        data = yaml.safe_load(content)
    else:
        data = json.loads(content)
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} does not contain a manifest object")
    return data

from importlib import resources


def load_svg_js() -> str:
    with resources.files(__package__).joinpath("data/svg.js").open("r", encoding="utf-8") as fh:
        return fh.read()


def load_svg_css() -> str:
    with resources.files(__package__).joinpath("data/svg.css").open("r", encoding="utf-8") as fh:
        return fh.read()

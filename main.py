"""Launch the shapefile CSV FastAPI server."""

from shapefile_csv.server import run


def main():
    run()


if __name__ == "__main__":
    main()

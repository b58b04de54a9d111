from node_drain.cli import app

if __name__ == "__main__":
    app(prog_name="node-drain")

from unsealer.runtime import run

# Container-Entrypoint: python main.py (WORKDIR /app)
if __name__ == "__main__":
    run()

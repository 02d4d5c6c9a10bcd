from crypto_openpgp import library_version

if __name__ == "__main__":
    print(library_version())

from typing import Any


def get_client_capabilities(position_encodings: list[str] | None = None) -> dict[str, Any]:
    return {
        "general": {
            "positionEncodings": position_encodings or ["utf-16"],
        },
        "workspace": {
            "applyEdit": False,
            "executeCommand": {"dynamicRegistration": False},
            "configuration": True,
        },
        "textDocument": {
            "synchronization": {
                "dynamicRegistration": False,
                "didSave": False,
            },
            "codeLens": {"dynamicRegistration": False},
            "publishDiagnostics": {
                "relatedInformation": False,
                "versionSupport": True,
            },
        },
        # clangd predates general.positionEncodings
        "offsetEncoding": position_encodings or ["utf-16"],
    }

"""
Walk one coffee batch through the supply chain via the API.
Run (server started with LEDGER_ADMIN=deployer):
    python scripts/simulate_supply_chain.py
"""
import os
import requests

API = os.getenv("API_URL", "http://localhost:8000")
ADMIN = os.getenv("LEDGER_ADMIN", "deployer")
SUPPLIER = "supplier-toraja"
DISTRIBUTOR = "distributor-makassar"

def call(method, path, caller=None, **kwargs):
    headers = {"X-Caller": caller} if caller else {}
    r = requests.request(method, f"{API}{path}", headers=headers, timeout=10, **kwargs)
    print(method, path, r.status_code, r.text)
    return r

def main():
    info = call("GET", "/api/ledger").json()

    call("POST", "/api/suppliers", ADMIN, json={"identity": SUPPLIER})

    r = call("POST", "/api/products", SUPPLIER, json={
        "name": "Kopi Arabica",
        "origin": "Toraja, Sulawesi Selatan",
        "batch_number": "1",
        "quantity_kg": 100,
        "metadata_uri": "ipfs://bafybeicw5okhl2hng2oqwnqsrrtd62unewcr3gjdry2msofdnyfcnng3vq/0.json",
        "paid_amount": info["mint_fee"],
    })
    token_id = r.json()["id"]

    call("PUT", f"/api/products/{token_id}/status", SUPPLIER,
         json={"status": "Shipped to distributor"})
    call("POST", f"/api/products/{token_id}/transfer", SUPPLIER,
         json={"from_identity": SUPPLIER, "to_identity": DISTRIBUTOR})
    call("PUT", f"/api/products/{token_id}/status", DISTRIBUTOR,
         json={"status": "Stored at distributor warehouse"})

    call("GET", f"/api/products/{token_id}/verify")
    call("GET", "/api/ledger")

if __name__ == "__main__":
    main()

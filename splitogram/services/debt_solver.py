from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class Debt:
    from_user: int  # debtor
    to_user: int  # creditor
    amount: int  # micro-USDT, always positive


def simplify_debts(balances: Dict[int, int]) -> List[Debt]:
    """
    Greedy largest-first matching of net balances into transfers.

    Positive balance = creditor, negative = debtor. The input must sum to
    zero; the ledger aggregator guarantees that. The result settles every
    balance in at most ``nonzero_members - 1`` transfers, although greedy
    matching is not optimal for every input.

    Members with equal amounts keep the iteration order of ``balances``.
    """
    creditors = [[uid, bal] for uid, bal in balances.items() if bal > 0]
    debtors = [[uid, -bal] for uid, bal in balances.items() if bal < 0]

    # stable, so ties keep the input order
    creditors.sort(key=lambda x: x[1], reverse=True)
    debtors.sort(key=lambda x: x[1], reverse=True)

    debts: List[Debt] = []
    i = 0
    j = 0

    while i < len(creditors) and j < len(debtors):
        cred_id, cred_amt = creditors[i]
        debt_id, debt_amt = debtors[j]

        transfer = min(cred_amt, debt_amt)

        if transfer > 0:
            debts.append(Debt(from_user=debt_id, to_user=cred_id, amount=transfer))

        creditors[i][1] -= transfer
        debtors[j][1] -= transfer

        if creditors[i][1] == 0:
            i += 1
        if debtors[j][1] == 0:
            j += 1

    return debts

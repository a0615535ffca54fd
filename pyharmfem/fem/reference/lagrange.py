from functools import lru_cache
import sympy as sp

# Reference corner nodes, counter-clockwise, and the monomials spanning
# the order-1 space on each element.
_REFERENCE_NODES = {
    "line": ((-1,), (1,)),
    "tri":  ((0, 0), (1, 0), (0, 1)),
    "quad": ((-1, -1), (1, -1), (1, 1), (-1, 1)),
}


def _monomials(element_type, xi, eta):
    if element_type == "line":
        return [sp.S(1), xi]
    if element_type == "tri":
        return [sp.S(1), xi, eta]
    if element_type == "quad":
        return [sp.S(1), xi, eta, xi * eta]
    raise KeyError(element_type)


@lru_cache(maxsize=None)
def lagrange_p1(element_type: str):
    """
    Return lambdified order-1 Lagrange shape functions and first derivatives.

    Returns:
        tuple: (shape_lambda, deriv_lambdas, nodes)
            - shape_lambda: callable (xi, eta) -> [phi_1, ..., phi_N]
            - deriv_lambdas: tuple of callables, one per reference direction,
              each giving [d phi_1, ..., d phi_N]
            - nodes: reference coordinates of the element corners
    """
    nodes = _REFERENCE_NODES[element_type]
    dim = len(nodes[0])
    xi_sym, eta_sym = sp.symbols("xi eta")
    coord_syms = (xi_sym, eta_sym)[:dim]
    monomials = _monomials(element_type, xi_sym, eta_sym)

    # Vandermonde-like matrix: V[i, j] = monomial_j(node_i)
    V = sp.zeros(len(nodes), len(monomials))
    for i, node in enumerate(nodes):
        subs = {s: sp.Integer(c) for s, c in zip(coord_syms, node)}
        for j, mono in enumerate(monomials):
            V[i, j] = mono.subs(subs)
    try:
        coeffs = V.T.inv()
    except ValueError:  # NonInvertibleMatrixError
        raise RuntimeError(f"Vandermonde matrix is singular for '{element_type}'.")

    mono_col = sp.Matrix(monomials)
    basis = [sp.simplify((coeffs.row(k) * mono_col)[0, 0]) for k in range(len(nodes))]

    # Lambdify with both coordinates so every element type shares one signature.
    shape_lambda = sp.lambdify((xi_sym, eta_sym), basis, "numpy")
    deriv_lambdas = tuple(
        sp.lambdify((xi_sym, eta_sym), [sp.diff(phi, s) for phi in basis], "numpy")
        for s in coord_syms
    )
    return shape_lambda, deriv_lambdas, nodes
